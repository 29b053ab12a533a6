"""
Snapshot artifact: build, write and read.

A snapshot is written once per pipeline run and fully replaces the previous
file. ``read_snapshot`` is the one place that understands older artifact
layouts; everything downstream works with the typed ``Snapshot`` model.

Usage:
    from scripts.lib.snapshot import build_snapshot, write_snapshot, read_snapshot
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from models.dashboard_models import SNAPSHOT_SCHEMA_VERSION, DatasetMetrics, Snapshot
from scripts.lib.errors import SchemaValidationError, SnapshotWriteError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import atomic_write_json

logger = setup_logger(__name__)

# Funnel key spellings seen in artifacts produced before schema v2
LEGACY_FUNNEL_KEYS: Dict[str, tuple] = {
    "leadsACRM": ("leads", "leadsTot", "totalLeads"),
    "iscrittiPiattaforma": ("iscritti", "iscrittiTot", "registered"),
    "profiloCompleto": ("profilo", "profiloTot", "profiled"),
    "corsisti": ("corsistiTot", "students"),
    "paganti": ("pagantiTot", "paying"),
}


def build_snapshot(
    contacts: List[Dict[str, Any]],
    metrics: DatasetMetrics,
    now: Optional[datetime] = None,
) -> Snapshot:
    """Combine scrubbed contacts and computed metrics into one snapshot."""
    generated_at = now or datetime.now(timezone.utc)
    return Snapshot(
        schema_version=SNAPSHOT_SCHEMA_VERSION,
        generated_at=generated_at,
        total_contacts=len(contacts),
        contacts=contacts,
        **{name: getattr(metrics, name) for name in DatasetMetrics.model_fields},
    )


def write_snapshot(snapshot: Snapshot, path: str | Path) -> Path:
    """Overwrite the snapshot file atomically."""
    try:
        written = atomic_write_json(snapshot.to_artifact(), path)
    except (OSError, TypeError, ValueError) as e:
        raise SnapshotWriteError(str(path), e) from e
    logger.info(
        "Snapshot saved: %d contacts, generated at %s -> %s",
        snapshot.total_contacts, snapshot.generated_at.isoformat(), written,
    )
    return written


def _flatten_legacy(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Lift a ``datasets`` block to the top level and fix funnel key names."""
    data = dict(raw)
    nested = data.pop("datasets", None)
    if isinstance(nested, dict):
        for key, value in nested.items():
            data.setdefault(key, value)

    funnel = data.get("funnel")
    if isinstance(funnel, list):
        # [{step, value}, ...] in funnel order
        values = [row.get("value", 0) for row in funnel if isinstance(row, dict)]
        funnel = dict(zip(LEGACY_FUNNEL_KEYS, values))
    if not isinstance(funnel, dict):
        funnel = {}
    else:
        funnel = dict(funnel)
    for canonical, aliases in LEGACY_FUNNEL_KEYS.items():
        if canonical in funnel:
            continue
        for alias in aliases:
            if alias in funnel:
                funnel[canonical] = funnel[alias]
                break
    data["funnel"] = funnel

    if "totalContacts" not in data and isinstance(data.get("contacts"), list):
        data["totalContacts"] = len(data["contacts"])
    data.setdefault("schemaVersion", 1)
    return data


def read_snapshot(raw: Any) -> Snapshot:
    """Validate a decoded snapshot payload into a Snapshot.

    Raises:
        SchemaValidationError: when the payload is not a usable snapshot.
    """
    if not isinstance(raw, dict):
        raise SchemaValidationError("Snapshot payload is not a JSON object")
    if "generatedAt" not in raw:
        raise SchemaValidationError("Snapshot has no generatedAt", field="generatedAt")

    data = raw if raw.get("schemaVersion") == SNAPSHOT_SCHEMA_VERSION else _flatten_legacy(raw)
    try:
        return Snapshot.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise SchemaValidationError(f"Invalid snapshot: {e.error_count()} error(s)", field=field) from e
