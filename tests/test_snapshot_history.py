"""Tests for the snapshot artifact, history retention and weekly deltas."""

import json
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from models.dashboard_models import (
    DailySnapshot,
    FunnelCounters,
    History,
    WeeklySnapshot,
)
from scripts.funnel_analyzer import analyze_contacts
from scripts.lib.deltas import build_trend_series, calculate_deltas
from scripts.lib.errors import (
    HistoryWriteError,
    InsufficientHistoryError,
    SchemaValidationError,
    SnapshotWriteError,
)
from scripts.lib.history import (
    load_history,
    prune_daily,
    prune_weekly,
    save_history,
    should_snapshot_weekly,
    update_history,
    week_key_for,
)
from scripts.lib.scrubber import scrub_contacts
from scripts.lib.snapshot import build_snapshot, read_snapshot, write_snapshot


# ─── Snapshot ───────────────────────────────────────────────

class TestSnapshot:
    def test_build_write_read(self, sample_contacts, fixed_now, tmp_path):
        metrics = analyze_contacts(sample_contacts)
        snapshot = build_snapshot(scrub_contacts(sample_contacts), metrics, now=fixed_now)
        path = write_snapshot(snapshot, tmp_path / "out" / "datasets.json")

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert list(raw)[:4] == ["schemaVersion", "generatedAt", "totalContacts", "contacts"]
        assert raw["schemaVersion"] == 2
        assert raw["totalContacts"] == 4
        assert raw["funnel"]["leadsACRM"] == 4
        assert "distribuzione_fonte" in raw
        assert all("email" not in c for c in raw["contacts"])

        again = read_snapshot(raw)
        assert again.funnel == metrics.funnel
        assert again.sources == metrics.sources

    def test_write_is_full_overwrite(self, fixed_now, tmp_path):
        target = tmp_path / "datasets.json"
        target.write_text('{"stale": true}', encoding="utf-8")
        snapshot = build_snapshot([], analyze_contacts([]), now=fixed_now)
        write_snapshot(snapshot, target)
        assert "stale" not in json.loads(target.read_text(encoding="utf-8"))
        assert not (tmp_path / "datasets.json.tmp").exists()

    def test_write_failure_is_wrapped(self, fixed_now, tmp_path):
        snapshot = build_snapshot([], analyze_contacts([]), now=fixed_now)
        with patch("scripts.lib.snapshot.atomic_write_json", side_effect=OSError("disk full")):
            with pytest.raises(SnapshotWriteError):
                write_snapshot(snapshot, tmp_path / "datasets.json")

    def test_reads_legacy_nested_shape(self):
        legacy = {
            "generatedAt": "2025-09-01T08:00:00Z",
            "contacts": [{"id": 1}, {"id": 2}],
            "datasets": {
                "funnel": {"leads": 2, "iscritti": 1, "profilo": 1, "corsisti": 1, "paganti": 0},
                "distribuzione_fonte": [{"name": "META", "value": 2}],
            },
        }
        snapshot = read_snapshot(legacy)
        assert snapshot.schema_version == 1
        assert snapshot.total_contacts == 2
        assert snapshot.funnel.leads == 2
        assert snapshot.funnel.platform_members == 1
        assert snapshot.sources[0].name == "META"

    def test_reads_legacy_list_funnel(self):
        legacy = {
            "generatedAt": "2025-09-01T08:00:00Z",
            "funnel": [
                {"step": "Leads", "value": 10},
                {"step": "Iscritti", "value": 8},
                {"step": "Profilo", "value": 5},
                {"step": "Corsisti", "value": 3},
                {"step": "Paganti", "value": 2},
            ],
        }
        snapshot = read_snapshot(legacy)
        assert snapshot.funnel.paying == 2
        assert snapshot.funnel.enrolled == 3

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"totalContacts": 3},
        {"generatedAt": "not a date"},
    ])
    def test_unusable_payloads(self, payload):
        with pytest.raises(SchemaValidationError):
            read_snapshot(payload)


# ─── History ────────────────────────────────────────────────

def _funnel(leads, **kw):
    return FunnelCounters(leads=leads, **kw)


class TestCadence:
    def test_wednesday_only(self):
        assert should_snapshot_weekly(date(2025, 10, 1))          # Wednesday
        assert not should_snapshot_weekly(date(2025, 10, 2))      # Thursday
        assert should_snapshot_weekly(date(2025, 10, 2), weekday=3)

    def test_week_key_is_monday(self):
        assert week_key_for(date(2025, 10, 1)) == "29/09/2025"
        assert week_key_for(date(2025, 9, 29)) == "29/09/2025"
        assert week_key_for(datetime(2025, 10, 5, 23, 59)) == "29/09/2025"


class TestRetention:
    def test_daily_window(self):
        today = date(2025, 10, 31)
        entries = [
            DailySnapshot(date=(today - timedelta(days=n)).isoformat(), funnel=_funnel(n))
            for n in (0, 29, 30, 31, 60)
        ]
        kept = prune_daily(entries, today)
        assert [e.funnel.leads for e in kept] == [0, 29, 30]

    def test_weekly_window_and_formats(self):
        today = date(2025, 10, 1)
        entries = [
            WeeklySnapshot(week="2025-09-24", funnel=_funnel(1)),
            WeeklySnapshot(week="07/07/2025", funnel=_funnel(2)),      # 86 days
            WeeklySnapshot(week="garbage", funnel=_funnel(3)),
            WeeklySnapshot(week="22/09/2025", date="2025-09-24", funnel=_funnel(4)),
        ]
        kept = prune_weekly(entries, today)
        assert [e.funnel.leads for e in kept] == [1, 4]

    def test_daily_never_older_than_window_after_many_runs(self):
        history = History()
        start = date(2025, 1, 1)
        for n in range(45):
            history = update_history(history, _funnel(n), n, start + timedelta(days=n))
        last = start + timedelta(days=44)
        assert all(
            date.fromisoformat(e.date) >= last - timedelta(days=30) for e in history.daily
        )
        assert len(history.daily) == 31


class TestUpdateHistory:
    def test_non_weekday_appends_daily_only(self):
        history = update_history(History(), _funnel(10), 10, date(2025, 10, 2))
        assert len(history.daily) == 1
        assert history.weekly == []

    def test_weekday_appends_weekly(self):
        history = update_history(History(), _funnel(10), 10, date(2025, 10, 1))
        assert history.weekly[0].week == "29/09/2025"
        assert history.weekly[0].date == "2025-10-01"
        assert history.weekly[0].total_contacts == 10

    def test_same_day_reruns_replace(self):
        day = date(2025, 10, 1)
        history = update_history(History(), _funnel(10), 10, day)
        history = update_history(history, _funnel(12), 12, day)
        assert len(history.daily) == 1
        assert len(history.weekly) == 1
        assert history.daily[0].funnel.leads == 12
        assert history.weekly[0].funnel.leads == 12

    def test_input_history_not_mutated(self):
        original = History(daily=[DailySnapshot(date="2025-09-30", funnel=_funnel(1))])
        update_history(original, _funnel(2), 2, date(2025, 10, 1))
        assert len(original.daily) == 1


class TestHistoryPersistence:
    def test_missing_file_is_empty_history(self, tmp_path):
        assert load_history(tmp_path / "nope.json") == History()

    def test_corrupt_file_is_empty_history(self, tmp_path):
        path = tmp_path / "historical-data.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_history(path) == History()

    def test_invalid_shape_is_empty_history(self, tmp_path):
        path = tmp_path / "historical-data.json"
        path.write_text('{"weekly": "nope"}', encoding="utf-8")
        assert load_history(path) == History()

    def test_bad_entry_does_not_drop_the_rest(self, tmp_path):
        path = tmp_path / "historical-data.json"
        good_funnel = {"leadsACRM": 90, "paganti": 4}
        path.write_text(json.dumps({
            "weekly": [
                {"week": "22/09/2025", "date": "2025-09-24", "funnel": good_funnel, "totalContacts": 90},
                {"date": "2025-09-17", "funnel": good_funnel},
            ],
            "daily": [
                {"date": "2025-09-30", "funnel": good_funnel, "totalContacts": 90},
                {"date": "2025-09-29", "funnel": None},
                {"date": "2025-09-28", "funnel": {"leadsACRM": -1}},
            ],
        }), encoding="utf-8")

        history = load_history(path)
        assert [e.week for e in history.weekly] == ["22/09/2025"]
        assert [e.date for e in history.daily] == ["2025-09-30"]

        updated = update_history(history, _funnel(100, paying=5), 100, date(2025, 10, 1))
        save_history(updated, path)
        reloaded = load_history(path)
        assert [e.week for e in reloaded.weekly] == ["22/09/2025", "29/09/2025"]
        assert [e.date for e in reloaded.daily] == ["2025-09-30", "2025-10-01"]
        assert reloaded.weekly[0].funnel.leads == 90

    def test_non_object_payload_is_empty_history(self, tmp_path):
        path = tmp_path / "historical-data.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert load_history(path) == History()

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "historical-data.json"
        history = update_history(History(), _funnel(7, paying=1), 7, date(2025, 10, 1))
        save_history(history, path)

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw["daily"][0]["funnel"]["leadsACRM"] == 7
        assert raw["weekly"][0]["totalContacts"] == 7
        assert load_history(path) == history

    def test_write_failure(self, tmp_path):
        with patch("scripts.lib.history.atomic_write_json", side_effect=OSError("read-only")):
            with pytest.raises(HistoryWriteError):
                save_history(History(), tmp_path / "h.json")


# ─── Deltas ─────────────────────────────────────────────────

class TestDeltas:
    @pytest.fixture
    def weekly(self):
        return [
            WeeklySnapshot.model_validate({
                "week": "2025-09-24",
                "funnel": {"leadsACRM": 100, "iscrittiPiattaforma": 50, "profiloCompleto": 40,
                           "corsisti": 10, "paganti": 5},
                "totalContacts": 100,
            }),
            WeeklySnapshot.model_validate({
                "week": "2025-10-01",
                "funnel": {"leadsACRM": 120, "iscrittiPiattaforma": 66, "profiloCompleto": 48,
                           "corsisti": 12, "paganti": 6},
                "totalContacts": 120,
            }),
        ]

    def test_leads_delta(self, weekly):
        report = calculate_deltas(weekly)
        leads = report.items[0]
        assert leads.metric == "Leads in CRM"
        assert (leads.current, leads.previous, leads.delta_abs) == (120, 100, 20)
        assert report.week_current == "2025-10-01"
        assert report.week_previous == "2025-09-24"

    def test_percentage_points(self, weekly):
        members = calculate_deltas(weekly).items[1]
        assert members.rate_previous == pytest.approx(0.5)
        assert members.rate_current == pytest.approx(0.55)
        assert members.delta_pp == pytest.approx(5.0)

    def test_uses_last_two_entries(self, weekly):
        older = WeeklySnapshot(week="2025-09-17", funnel=_funnel(1), total_contacts=1)
        report = calculate_deltas([older, *weekly])
        assert report.items[0].previous == 100

    def test_zero_total_gives_zero_rate(self):
        weekly = [
            WeeklySnapshot(week="a", funnel=_funnel(0)),
            WeeklySnapshot(week="b", funnel=_funnel(0)),
        ]
        assert calculate_deltas(weekly).items[0].rate_current == 0.0

    @pytest.mark.parametrize("count", [0, 1])
    def test_insufficient_history(self, count, weekly):
        with pytest.raises(InsufficientHistoryError) as exc:
            calculate_deltas(weekly[:count])
        assert exc.value.available == count

    def test_trend_series(self, weekly):
        series = build_trend_series(weekly)
        assert len(series) == 5
        paying = series[4]
        assert paying.metric == "Paying customers"
        assert [p.value for p in paying.points] == [5, 6]
        assert [p.date for p in paying.points] == ["2025-09-24", "2025-10-01"]
        assert paying.points[0].rate == pytest.approx(0.05)

    def test_trend_with_single_week(self, weekly):
        assert all(len(s.points) == 1 for s in build_trend_series(weekly[:1]))

    def test_trend_points_use_week_key_not_run_date(self):
        weekly = [
            WeeklySnapshot(week="22/09/2025", date="2025-09-24", funnel=_funnel(10), total_contacts=10),
            WeeklySnapshot(week="29/09/2025", date="2025-10-02", funnel=_funnel(12), total_contacts=12),
        ]
        leads = build_trend_series(weekly)[0]
        assert [p.date for p in leads.points] == ["22/09/2025", "29/09/2025"]
