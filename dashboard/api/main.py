"""
Funnel Dashboard — API Server
===============================

Read-only API over the artifacts published by the pipeline. Each app
instance owns one cache per artifact; ``?refresh=true`` on a read endpoint
drops the cached copy and reads it again.

Route groups:
  /api/health              - Health check and artifact locations
  /api/datasets            - Full snapshot artifact
  /api/funnel              - Funnel counters with display labels
  /api/distributions/*     - One distribution, optionally thresholded
  /api/history             - Retained daily and weekly counters
  /api/delta               - Week-over-week funnel deltas
  /api/trend               - Per-metric weekly trend series
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from scripts.lib.artifacts import ArtifactCache
from scripts.lib.history import parse_history
from scripts.lib.logger import setup_logger
from scripts.lib.settings import Settings, get_settings
from scripts.lib.snapshot import read_snapshot

logger = setup_logger("dashboard_api")

API_VERSION = "2.0.0"


# ─── Lifespan ─────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app):
    """Application startup and shutdown."""
    settings: Settings = app.state.settings
    logger.info("Starting Funnel Dashboard API...")
    logger.info("Snapshot source: %s", settings.datasets_location)
    logger.info("History source:  %s", settings.history_location)
    yield
    logger.info("Shutting down Funnel Dashboard API...")


# ─── App Setup ────────────────────────────────────────────────

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Funnel Dashboard",
        version=API_VERSION,
        description="Conversion funnel, distributions and weekly trends from the CRM",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.datasets = ArtifactCache(
        settings.datasets_location, timeout=settings.request_timeout, parser=read_snapshot,
        max_age=settings.artifact_max_age,
    )
    app.state.history = ArtifactCache(
        settings.history_location, timeout=settings.request_timeout, parser=parse_history,
        max_age=settings.artifact_max_age,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    from dashboard.api.routers.metrics import router as metrics_router

    app.include_router(metrics_router)

    # ─── Health ───────────────────────────────────────────────

    @app.get("/api/health", tags=["system"])
    async def health(request: Request):
        """Health check with artifact cache status."""
        state = request.app.state
        return {
            "status": "healthy",
            "service": "Funnel Dashboard",
            "version": API_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "artifacts": {
                "datasets": {
                    "location": state.datasets.location,
                    "cached": state.datasets.is_loaded,
                },
                "history": {
                    "location": state.history.location,
                    "cached": state.history.is_loaded,
                },
            },
        }

    return app


app = create_app()
