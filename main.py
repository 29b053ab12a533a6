"""
Funnel Dashboard — Entry Point
================================

Run: python main.py
"""

import os

import uvicorn

from scripts.lib.logger import setup_logger
from scripts.lib.settings import get_settings

logger = setup_logger("funnel-dashboard")

if __name__ == "__main__":
    settings = get_settings()

    logger.info("=" * 60)
    logger.info("  FUNNEL DASHBOARD — Conversion Funnel API")
    logger.info("=" * 60)
    logger.info(f"  Environment : {os.getenv('ENVIRONMENT', 'development')}")
    logger.info(f"  Server      : http://0.0.0.0:{settings.dashboard_port}")
    logger.info(f"  API Docs    : http://localhost:{settings.dashboard_port}/docs")
    logger.info(f"  Snapshot    : {settings.datasets_location}")
    logger.info(f"  History     : {settings.history_location}")
    logger.info(f"  Debug       : {os.getenv('DEBUG', 'false')}")
    logger.info("=" * 60)

    uvicorn.run(
        "dashboard.api.main:app",
        host="0.0.0.0",
        port=settings.dashboard_port,
        reload=os.getenv("DEBUG", "false").lower() == "true",
    )
