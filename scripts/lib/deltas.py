"""
Week-over-week deltas and per-metric trend series from retained weekly history.

The weekly list is read in its chronological append order; the last two
entries are "current" and "previous".
"""
from __future__ import annotations

from typing import List, Sequence

from models.dashboard_models import (
    FUNNEL_METRICS,
    DeltaItem,
    DeltaReport,
    TrendPoint,
    TrendSeries,
    WeeklySnapshot,
)
from scripts.lib.errors import InsufficientHistoryError
from scripts.lib.utils import safe_div

MIN_WEEKS_FOR_DELTA = 2


def metric_rate(entry: WeeklySnapshot, metric: str) -> float:
    return safe_div(getattr(entry.funnel, metric), entry.total_contacts)


def build_trend_series(weekly: Sequence[WeeklySnapshot]) -> List[TrendSeries]:
    """One series per funnel metric, one point per retained week. No gap filling.

    Points are keyed by the week key (Monday, DD/MM/YYYY), not the run date.
    """
    series = []
    for metric, label in FUNNEL_METRICS:
        points = [
            TrendPoint(
                date=entry.week,
                value=getattr(entry.funnel, metric),
                rate=metric_rate(entry, metric),
            )
            for entry in weekly
        ]
        series.append(TrendSeries(metric=label, points=points))
    return series


def calculate_deltas(weekly: Sequence[WeeklySnapshot]) -> DeltaReport:
    """Compare the two most recent weekly snapshots.

    Raises:
        InsufficientHistoryError: fewer than two weekly entries are retained.
    """
    if len(weekly) < MIN_WEEKS_FOR_DELTA:
        raise InsufficientHistoryError(len(weekly), MIN_WEEKS_FOR_DELTA)

    previous, current = weekly[-2], weekly[-1]
    items = []
    for metric, label in FUNNEL_METRICS:
        cur_value = getattr(current.funnel, metric)
        prev_value = getattr(previous.funnel, metric)
        rate_cur = metric_rate(current, metric)
        rate_prev = metric_rate(previous, metric)
        items.append(
            DeltaItem(
                metric=label,
                current=cur_value,
                previous=prev_value,
                rate_current=rate_cur,
                rate_previous=rate_prev,
                delta_abs=cur_value - prev_value,
                delta_pp=(rate_cur - rate_prev) * 100,
            )
        )

    return DeltaReport(
        week_current=current.week,
        week_previous=previous.week,
        items=items,
        trend=build_trend_series(weekly),
    )
