"""
Funnel Dashboard — Metrics Router
===================================
Serves the published snapshot and history artifacts, plus the views derived
from them on read.

Endpoints:
  GET /api/datasets               - Full snapshot (?refresh=true re-reads it)
  GET /api/funnel                 - Funnel counters in funnel order
  GET /api/distributions/{name}   - One distribution (?threshold=N&relabel=true)
  GET /api/history                - Daily and weekly retained counters
  GET /api/delta                  - Last two weekly snapshots compared
  GET /api/trend                  - Weekly series per funnel metric

Status codes:
  404  no snapshot has been published yet / unknown distribution
  502  the artifact exists but could not be fetched or parsed
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from models.dashboard_models import DISTRIBUTION_FIELDS, FUNNEL_METRICS, History, Snapshot
from scripts.funnel_analyzer import group_by_threshold
from scripts.lib.deltas import build_trend_series, calculate_deltas
from scripts.lib.errors import DashboardError, InsufficientHistoryError
from scripts.lib.logger import setup_logger
from scripts.lib.normalizers import relabel_cohort_years

logger = setup_logger("metrics_router")

router = APIRouter(prefix="/api", tags=["metrics"])

# Accept the wire key as well as the attribute name, e.g. "distribuzione_fonte"
_DISTRIBUTION_ALIASES = {
    Snapshot.model_fields[name].alias or name: name for name in DISTRIBUTION_FIELDS
}


# ─── Artifact access ──────────────────────────────────────────

def _load_snapshot(request: Request, refresh: bool = False) -> Snapshot:
    cache = request.app.state.datasets
    try:
        snapshot = cache.refresh() if refresh else cache.get()
    except DashboardError as e:
        logger.error("Snapshot unavailable: %s", e)
        raise HTTPException(status_code=502, detail=f"Failed to fetch snapshot: {e}")
    if snapshot is None:
        raise HTTPException(
            status_code=404,
            detail="No snapshot published yet. Run: funnel-dashboard-update",
        )
    return snapshot


def _load_history(request: Request, refresh: bool = False) -> History:
    cache = request.app.state.history
    try:
        history = cache.refresh() if refresh else cache.get()
    except DashboardError as e:
        logger.error("History unavailable: %s", e)
        raise HTTPException(status_code=502, detail=f"Failed to fetch history: {e}")
    return history or History()


def _resolve_distribution(name: str) -> str:
    if name in DISTRIBUTION_FIELDS:
        return name
    if name in _DISTRIBUTION_ALIASES:
        return _DISTRIBUTION_ALIASES[name]
    raise HTTPException(
        status_code=404,
        detail=f"Unknown distribution '{name}'. Available: {', '.join(DISTRIBUTION_FIELDS)}",
    )


# ─── Snapshot ─────────────────────────────────────────────────

@router.get("/datasets")
async def datasets(
    request: Request,
    refresh: bool = Query(False, description="Drop the cached copy and re-read"),
    include_contacts: bool = Query(True, description="Include scrubbed contact records"),
):
    """The published snapshot artifact."""
    snapshot = _load_snapshot(request, refresh)
    return JSONResponse(content=snapshot.to_artifact(include_contacts=include_contacts))


@router.get("/funnel")
async def funnel(request: Request):
    """Funnel counters with display labels, in funnel order."""
    snapshot = _load_snapshot(request)
    return {
        "generatedAt": snapshot.generated_at.isoformat(),
        "totalContacts": snapshot.total_contacts,
        "funnel": snapshot.funnel.model_dump(by_alias=True),
        "steps": [
            {"metric": label, "value": getattr(snapshot.funnel, attr)}
            for attr, label in FUNNEL_METRICS
        ],
    }


@router.get("/distributions/{name}")
async def distribution(
    request: Request,
    name: str,
    threshold: Optional[int] = Query(None, ge=0, description="Fold entries below N into Other"),
    relabel: bool = Query(False, description="Regroup cohort years into chart buckets"),
):
    """One distribution of the snapshot."""
    field = _resolve_distribution(name)
    snapshot = _load_snapshot(request)
    entries = [e.model_dump() for e in getattr(snapshot, field)]

    if relabel and field == "cohort_years":
        entries = relabel_cohort_years(entries)
    if threshold is not None:
        entries = [e.model_dump() for e in group_by_threshold(entries, threshold)]

    return {
        "name": field,
        "generatedAt": snapshot.generated_at.isoformat(),
        "total": sum(e["value"] for e in entries),
        "entries": entries,
    }


# ─── History ──────────────────────────────────────────────────

@router.get("/history")
async def history(
    request: Request,
    refresh: bool = Query(False, description="Drop the cached copy and re-read"),
):
    """Retained daily and weekly funnel counters."""
    return _load_history(request, refresh).to_artifact()


@router.get("/delta")
async def delta(request: Request):
    """Week-over-week deltas. Too little history is a normal state, not an error."""
    weekly = _load_history(request).weekly
    try:
        report = calculate_deltas(weekly)
    except InsufficientHistoryError as e:
        return {"status": "insufficient_history", "weeks_available": e.available}
    return {"status": "ok", **report.model_dump()}


@router.get("/trend")
async def trend(request: Request):
    """One weekly series per funnel metric (any number of weeks)."""
    weekly = _load_history(request).weekly
    return {
        "weeks": len(weekly),
        "series": [s.model_dump() for s in build_trend_series(weekly)],
    }
