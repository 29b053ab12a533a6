"""
Funnel Dashboard — Pipeline Orchestrator
==========================================
One idempotent run of the data pipeline, with step timing and a summary.

Pipeline steps:
    1. Fetch           — every contact from Brevo (aborts the run on any error)
    2. Analyze         — scrub PII and compute funnel / distributions
    3. Write snapshot  — publish datasets.json (full overwrite)
    4. Update history  — append daily (and, on the weekday, weekly) counters

Exit codes:
    0  success
    1  fetch or snapshot failure (nothing published)
    2  configuration error
    3  history update failed (snapshot already published)

Usage:
    python scripts/pipeline_orchestrator.py                  # full run
    python scripts/pipeline_orchestrator.py --dry-run        # compute, write nothing
    python scripts/pipeline_orchestrator.py --log-level DEBUG
"""
from __future__ import annotations

import argparse
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# ---------------------------------------------------------------------------
# Path setup
# ---------------------------------------------------------------------------
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from integrations.brevo import BrevoClient
from scripts.funnel_analyzer import analyze_contacts
from scripts.lib.contact_rules import ContactRules
from scripts.lib.errors import (
    ConfigError,
    DashboardError,
    DataFetchError,
    HistoryWriteError,
    PipelineStepError,
)
from scripts.lib.history import load_history, save_history, should_snapshot_weekly, update_history
from scripts.lib.logger import set_level, setup_logger
from scripts.lib.scrubber import scrub_contacts
from scripts.lib.settings import Settings, get_settings
from scripts.lib.snapshot import build_snapshot, write_snapshot

logger = setup_logger("pipeline_orchestrator")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_HISTORY = 3


# ---------------------------------------------------------------------------
# Step execution
# ---------------------------------------------------------------------------
def run_step(step_name: str, fn: Callable[[], Any], steps: List[dict]) -> Any:
    """
    Run one step, time it and record the outcome in ``steps``.

    Dashboard errors propagate unchanged so callers can tell them apart;
    anything else is wrapped in PipelineStepError.
    """
    logger.info("Running: %s", step_name)
    start = time.time()
    try:
        result = fn()
    except Exception as e:
        duration = time.time() - start
        steps.append({
            "name": step_name,
            "status": "failed",
            "duration_ms": round(duration * 1000),
            "error": str(e),
        })
        logger.error("%s failed in %.1fs: %s", step_name, duration, e)
        if isinstance(e, DashboardError):
            raise
        raise PipelineStepError(step_name, e) from e

    duration = time.time() - start
    steps.append({
        "name": step_name,
        "status": "success",
        "duration_ms": round(duration * 1000),
        "error": None,
    })
    logger.info("%s completed in %.1fs", step_name, duration)
    return result


def _skip(step_name: str, steps: List[dict]) -> None:
    logger.info("[DRY RUN] Would execute: %s", step_name)
    steps.append({"name": step_name, "status": "skipped", "duration_ms": 0, "error": None})


def _client_from(settings: Settings) -> BrevoClient:
    return BrevoClient(
        settings.require_api_key(),
        base_url=settings.brevo_base_url,
        page_size=settings.page_size,
        timeout=settings.request_timeout,
        page_delay=settings.page_delay,
    )


# ---------------------------------------------------------------------------
# Main pipeline
# ---------------------------------------------------------------------------
def run_once(
    settings: Optional[Settings] = None,
    client: Optional[BrevoClient] = None,
    now: Optional[datetime] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """
    Execute one full pipeline run.

    Raises:
        ConfigError: missing credential or bad configuration.
        DataFetchError / APIError / SchemaValidationError: the fetch failed;
            nothing was written.
        SnapshotWriteError: the snapshot could not be published.
        HistoryWriteError: the snapshot is published but history is not.
    """
    settings = settings or get_settings()
    client = client or _client_from(settings)
    now = now or datetime.now(timezone.utc)
    rules = ContactRules(
        platform_list_id=settings.platform_list_id,
        webinar_list_id=settings.webinar_list_id,
    )
    steps: List[dict] = []

    def fetch() -> List[dict]:
        contacts = client.fetch_all_contacts()
        if not contacts:
            raise DataFetchError("CRM returned zero contacts", source=client.base_url)
        return contacts

    contacts = run_step("Fetch contacts", fetch, steps)

    def analyze():
        scrubbed = scrub_contacts(contacts)
        metrics = analyze_contacts(contacts, rules)
        return build_snapshot(scrubbed, metrics, now=now)

    snapshot = run_step("Analyze", analyze, steps)

    if dry_run:
        _skip("Write snapshot", steps)
        _skip("Update history", steps)
    else:
        run_step(
            "Write snapshot",
            lambda: write_snapshot(snapshot, settings.datasets_path),
            steps,
        )

        def update() -> None:
            # The snapshot is already published, so every failure here is a history failure.
            try:
                history = load_history(settings.history_path)
                updated = update_history(
                    history, snapshot.funnel, snapshot.total_contacts, now,
                    weekday=settings.weekly_snapshot_weekday,
                )
                save_history(updated, settings.history_path)
            except HistoryWriteError:
                raise
            except Exception as e:
                raise HistoryWriteError(str(settings.history_path), e) from e

        run_step("Update history", update, steps)

    return {
        "status": "success",
        "dry_run": dry_run,
        "generated_at": snapshot.generated_at.isoformat(),
        "total_contacts": snapshot.total_contacts,
        "funnel": snapshot.funnel.model_dump(by_alias=True),
        "weekly_snapshot": should_snapshot_weekly(now, settings.weekly_snapshot_weekday),
        "steps": steps,
    }


def _log_summary(result: Dict[str, Any], elapsed: float) -> None:
    logger.info("=" * 60)
    logger.info("  Pipeline Complete%s", " (dry run)" if result["dry_run"] else "")
    logger.info("  Contacts:    %d", result["total_contacts"])
    logger.info("  Weekly:      %s", "yes" if result["weekly_snapshot"] else "no")
    logger.info("  Duration:    %.1fs", elapsed)
    logger.info("=" * 60)
    for step in result["steps"]:
        icon = "OK" if step["status"] == "success" else "SKIP"
        logger.info("  [%4s] %-20s %6dms", icon, step["name"], step["duration_ms"])


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Funnel Dashboard data pipeline (run once)")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and compute without writing")
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override LOG_LEVEL for this run",
    )
    args = parser.parse_args(argv)

    if args.log_level:
        set_level(logger, args.log_level)

    logger.info("=" * 60)
    logger.info("  FUNNEL DASHBOARD — Pipeline Orchestrator")
    logger.info("=" * 60)
    if args.dry_run:
        logger.info("  Mode: DRY RUN")

    pipeline_start = time.time()
    try:
        result = run_once(dry_run=args.dry_run)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except HistoryWriteError as e:
        logger.error("Snapshot published but history update failed: %s", e)
        print(f"History update failed (snapshot was published): {e}", file=sys.stderr)
        return EXIT_HISTORY
    except DashboardError as e:
        logger.critical("Pipeline fatal error: %s", e, exc_info=True)
        print(f"Pipeline failed, nothing published: {e}", file=sys.stderr)
        return EXIT_FAILED
    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user")
        return 130

    _log_summary(result, time.time() - pipeline_start)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
