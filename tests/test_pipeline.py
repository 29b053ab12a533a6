"""Tests for the run-once pipeline and its CLI exit codes."""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from scripts import pipeline_orchestrator as orchestrator
from scripts.lib.errors import (
    APIError,
    ConfigError,
    DataFetchError,
    HistoryWriteError,
    PipelineStepError,
    SnapshotWriteError,
)


def _client(contacts=None, error=None):
    client = MagicMock()
    client.base_url = "https://api.brevo.test/v3/contacts"
    if error is not None:
        client.fetch_all_contacts.side_effect = error
    else:
        client.fetch_all_contacts.return_value = contacts
    return client


class TestRunOnce:
    def test_full_run_writes_snapshot_and_history(self, settings, sample_contacts, fixed_now):
        result = orchestrator.run_once(settings, _client(sample_contacts), now=fixed_now)

        assert result["status"] == "success"
        assert result["total_contacts"] == 4
        assert result["weekly_snapshot"] is True
        assert [s["name"] for s in result["steps"]] == [
            "Fetch contacts", "Analyze", "Write snapshot", "Update history",
        ]

        snapshot = json.loads(settings.datasets_path.read_text(encoding="utf-8"))
        assert snapshot["funnel"]["corsisti"] == 2
        assert snapshot["generatedAt"].startswith("2025-10-01")
        assert all("email" not in c for c in snapshot["contacts"])

        history = json.loads(settings.history_path.read_text(encoding="utf-8"))
        assert history["daily"][0]["date"] == "2025-10-01"
        assert history["weekly"][0]["week"] == "29/09/2025"

    def test_run_twice_same_day_is_idempotent(self, settings, sample_contacts, fixed_now):
        orchestrator.run_once(settings, _client(sample_contacts), now=fixed_now)
        orchestrator.run_once(settings, _client(sample_contacts), now=fixed_now)

        history = json.loads(settings.history_path.read_text(encoding="utf-8"))
        assert len(history["daily"]) == 1
        assert len(history["weekly"]) == 1

    def test_custom_list_ids_reach_the_analyzer(self, settings, fixed_now):
        from dataclasses import replace

        custom = replace(settings, platform_list_id=10)
        contacts = [{"id": 1, "attributes": {}, "listIds": [10]}]
        orchestrator.run_once(custom, _client(contacts), now=fixed_now)
        snapshot = json.loads(settings.datasets_path.read_text(encoding="utf-8"))
        assert snapshot["funnel"]["iscrittiPiattaforma"] == 1

    def test_dry_run_writes_nothing(self, settings, sample_contacts, fixed_now):
        result = orchestrator.run_once(
            settings, _client(sample_contacts), now=fixed_now, dry_run=True,
        )
        assert result["dry_run"] is True
        assert not settings.datasets_path.exists()
        assert not settings.history_path.exists()
        assert [s["status"] for s in result["steps"]] == ["success", "success", "skipped", "skipped"]

    def test_fetch_failure_publishes_nothing(self, settings, fixed_now):
        client = _client(error=APIError("boom", status_code=500, url="x"))
        with pytest.raises(APIError):
            orchestrator.run_once(settings, client, now=fixed_now)
        assert not settings.datasets_path.exists()
        assert not settings.history_path.exists()

    def test_zero_contacts_is_a_fetch_failure(self, settings, fixed_now):
        with pytest.raises(DataFetchError):
            orchestrator.run_once(settings, _client([]), now=fixed_now)
        assert not settings.datasets_path.exists()

    def test_history_failure_keeps_snapshot(self, settings, sample_contacts, fixed_now):
        with patch(
            "scripts.pipeline_orchestrator.save_history",
            side_effect=HistoryWriteError("h.json"),
        ):
            with pytest.raises(HistoryWriteError):
                orchestrator.run_once(settings, _client(sample_contacts), now=fixed_now)
        assert settings.datasets_path.exists()

    @pytest.mark.parametrize("target", ["load_history", "update_history"])
    def test_any_history_step_failure_is_history_error(self, target, settings, sample_contacts, fixed_now):
        with patch(f"scripts.pipeline_orchestrator.{target}", side_effect=RuntimeError("bad entry")):
            with pytest.raises(HistoryWriteError) as exc:
                orchestrator.run_once(settings, _client(sample_contacts), now=fixed_now)
        assert "bad entry" in str(exc.value)
        assert exc.value.details["path"] == str(settings.history_path)
        assert settings.datasets_path.exists()

    def test_unexpected_error_is_wrapped(self, settings, sample_contacts, fixed_now):
        with patch(
            "scripts.pipeline_orchestrator.analyze_contacts",
            side_effect=RuntimeError("bug"),
        ):
            with pytest.raises(PipelineStepError) as exc:
                orchestrator.run_once(settings, _client(sample_contacts), now=fixed_now)
        assert exc.value.step_name == "Analyze"

    def test_missing_api_key_without_client(self, settings):
        from dataclasses import replace

        with pytest.raises(ConfigError):
            orchestrator.run_once(replace(settings, brevo_api_key=None))


class TestMain:
    @pytest.mark.parametrize("error, code", [
        (ConfigError("BREVO_API_KEY missing", setting="BREVO_API_KEY"), 2),
        (APIError("boom", status_code=500), 1),
        (DataFetchError("empty"), 1),
        (SnapshotWriteError("datasets.json"), 1),
        (HistoryWriteError("historical-data.json"), 3),
    ])
    def test_exit_codes(self, error, code, capsys):
        with patch("scripts.pipeline_orchestrator.run_once", side_effect=error):
            assert orchestrator.main([]) == code
        assert capsys.readouterr().err.strip() != ""

    def test_history_step_crash_exits_with_history_code(self, settings, sample_contacts, capsys):
        with patch("scripts.pipeline_orchestrator.get_settings", return_value=settings), \
                patch("scripts.pipeline_orchestrator._client_from", return_value=_client(sample_contacts)), \
                patch("scripts.pipeline_orchestrator.update_history", side_effect=RuntimeError("bug")):
            assert orchestrator.main([]) == orchestrator.EXIT_HISTORY
        assert settings.datasets_path.exists()
        assert "History update failed" in capsys.readouterr().err

    def test_success(self, capsys):
        result = {
            "status": "success",
            "dry_run": False,
            "generated_at": datetime(2025, 10, 1, tzinfo=timezone.utc).isoformat(),
            "total_contacts": 4,
            "funnel": {},
            "weekly_snapshot": False,
            "steps": [],
        }
        with patch("scripts.pipeline_orchestrator.run_once", return_value=result) as run:
            assert orchestrator.main(["--dry-run"]) == 0
        run.assert_called_once_with(dry_run=True)
        assert capsys.readouterr().err == ""
