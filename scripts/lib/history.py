"""
Historical retention of funnel counters.

Two independent tracks live in one history file:

- daily:  one entry per run date, 30-day window
- weekly: one entry per ISO week, written only on the snapshot weekday,
          12-week (84-day) window

The cadence rules are pure functions of an injected date so they can be
tested without touching the clock. An entry that already exists for the same
date (daily) or week key (weekly) is replaced rather than duplicated.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import List, Optional, TypeVar

from pydantic import ValidationError

from models.dashboard_models import DailySnapshot, FunnelCounters, History, WeeklySnapshot
from scripts.lib.errors import HistoryWriteError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import atomic_write_json, load_json

logger = setup_logger(__name__)

DAILY_RETENTION_DAYS = 30
WEEKLY_RETENTION_DAYS = 84
WEEKLY_SNAPSHOT_WEEKDAY = 2  # Wednesday (Monday = 0)

WEEK_KEY_FORMAT = "%d/%m/%Y"
DAY_KEY_FORMAT = "%Y-%m-%d"

T = TypeVar("T", DailySnapshot, WeeklySnapshot)


# ---------------------------------------------------------------------------
# Cadence helpers
# ---------------------------------------------------------------------------

def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def should_snapshot_weekly(day: date | datetime, weekday: int = WEEKLY_SNAPSHOT_WEEKDAY) -> bool:
    return _as_date(day).weekday() == weekday


def week_start(day: date | datetime) -> date:
    """Monday of the ISO week containing ``day``."""
    d = _as_date(day)
    return d - timedelta(days=d.weekday())


def week_key_for(day: date | datetime) -> str:
    """Week key as DD/MM/YYYY of that week's Monday."""
    return week_start(day).strftime(WEEK_KEY_FORMAT)


def parse_history_date(value: Optional[str]) -> Optional[date]:
    """Parse YYYY-MM-DD (optionally with a time part) or DD/MM/YYYY."""
    if not value:
        return None
    text = value.strip()
    for fmt in (DAY_KEY_FORMAT, WEEK_KEY_FORMAT):
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    return None


def _entry_date(entry: DailySnapshot | WeeklySnapshot) -> Optional[date]:
    parsed = parse_history_date(entry.date)
    if parsed is None and isinstance(entry, WeeklySnapshot):
        parsed = parse_history_date(entry.week)
    return parsed


# ---------------------------------------------------------------------------
# Pruning
# ---------------------------------------------------------------------------

def _prune(entries: List[T], today: date, days: int, track: str) -> List[T]:
    cutoff = today - timedelta(days=days)
    kept: List[T] = []
    for entry in entries:
        entry_day = _entry_date(entry)
        if entry_day is None:
            logger.warning("Dropping %s history entry with unreadable date: %r", track, entry)
            continue
        if entry_day >= cutoff:
            kept.append(entry)
    dropped = len(entries) - len(kept)
    if dropped:
        logger.info("Pruned %d %s entries older than %s", dropped, track, cutoff.isoformat())
    return kept


def prune_daily(
    entries: List[DailySnapshot],
    today: date | datetime,
    days: int = DAILY_RETENTION_DAYS,
) -> List[DailySnapshot]:
    return _prune(entries, _as_date(today), days, "daily")


def prune_weekly(
    entries: List[WeeklySnapshot],
    today: date | datetime,
    days: int = WEEKLY_RETENTION_DAYS,
) -> List[WeeklySnapshot]:
    return _prune(entries, _as_date(today), days, "weekly")


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

def update_history(
    history: History,
    funnel: FunnelCounters,
    total_contacts: int,
    now: date | datetime,
    weekday: int = WEEKLY_SNAPSHOT_WEEKDAY,
    daily_days: int = DAILY_RETENTION_DAYS,
    weekly_days: int = WEEKLY_RETENTION_DAYS,
) -> History:
    """Return a new History with this run's counters appended and old entries pruned."""
    today = _as_date(now)
    day_key = today.strftime(DAY_KEY_FORMAT)

    daily = [e for e in prune_daily(history.daily, today, daily_days) if e.date != day_key]
    daily.append(DailySnapshot(date=day_key, funnel=funnel, total_contacts=total_contacts))

    weekly = prune_weekly(history.weekly, today, weekly_days)
    if should_snapshot_weekly(today, weekday):
        week_key = week_key_for(today)
        weekly = [e for e in weekly if e.week != week_key]
        weekly.append(
            WeeklySnapshot(
                week=week_key, date=day_key, funnel=funnel, total_contacts=total_contacts,
            )
        )
        logger.info("Weekly snapshot added for week starting %s", week_key)

    return History(weekly=weekly, daily=daily)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def _valid_entries(raw_entries: list, model: type[T], track: str) -> List[T]:
    entries: List[T] = []
    for raw in raw_entries:
        try:
            entries.append(model.model_validate(raw))
        except ValidationError as e:
            logger.warning(
                "Dropping invalid %s history entry %r: %d error(s)", track, raw, e.error_count(),
            )
    return entries


def parse_history(raw) -> History:
    """Validate a decoded history payload entry by entry.

    Invalid entries are dropped one at a time so the rest of the retained
    history survives. Only a payload that is not an object, or whose tracks
    are not lists, yields empty history.
    """
    if not isinstance(raw, dict):
        logger.warning("History payload is not an object, starting empty")
        return History()

    weekly = raw.get("weekly") or []
    daily = raw.get("daily") or []
    if not isinstance(weekly, list) or not isinstance(daily, list):
        logger.warning("History tracks are not lists, starting empty")
        return History()

    return History(
        weekly=_valid_entries(weekly, WeeklySnapshot, "weekly"),
        daily=_valid_entries(daily, DailySnapshot, "daily"),
    )


def load_history(path: str | Path) -> History:
    """Read the history file. Missing or corrupt files yield empty history."""
    raw = load_json(path)
    if raw is None:
        logger.info("No usable history at %s, starting fresh", path)
        return History()
    return parse_history(raw)


def save_history(history: History, path: str | Path) -> Path:
    try:
        written = atomic_write_json(history.to_artifact(), path)
    except (OSError, TypeError, ValueError) as e:
        raise HistoryWriteError(str(path), e) from e
    logger.info(
        "History saved: %d daily, %d weekly -> %s",
        len(history.daily), len(history.weekly), written,
    )
    return written
