"""
Runtime configuration for the funnel dashboard.

Settings are read from environment variables (and a project-level .env file)
into an immutable Settings object. Only the CRM credential is mandatory, and
only for the pipeline run; the read API works without it.

Usage:
    from scripts.lib.settings import get_settings

    settings = get_settings()
    api_key = settings.require_api_key()
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from scripts.lib.errors import ConfigError

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_BREVO_BASE_URL = "https://api.brevo.com/v3/contacts"
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:8001"
DEFAULT_ARTIFACT_MAX_AGE = 300.0  # seconds; 0 or less disables expiry


@dataclass(frozen=True)
class Settings:
    brevo_api_key: Optional[str]
    brevo_base_url: str
    datasets_path: Path
    history_path: Path
    datasets_url: Optional[str]
    history_url: Optional[str]
    page_size: int
    request_timeout: float
    page_delay: float
    platform_list_id: int
    webinar_list_id: int
    weekly_snapshot_weekday: int
    log_level: str
    dashboard_port: int
    cors_origins: List[str]
    artifact_max_age: Optional[float] = DEFAULT_ARTIFACT_MAX_AGE

    def require_api_key(self) -> str:
        """Return the CRM credential or fail before any network call."""
        if not self.brevo_api_key:
            raise ConfigError(
                "BREVO_API_KEY environment variable is required",
                setting="BREVO_API_KEY",
            )
        return self.brevo_api_key

    @property
    def datasets_location(self) -> str:
        """Where readers load the snapshot from (URL wins over path)."""
        return self.datasets_url or str(self.datasets_path)

    @property
    def history_location(self) -> str:
        return self.history_url or str(self.history_path)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}", setting=name)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}", setting=name)


def _path_env(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if not raw:
        return default
    path = Path(raw)
    return path if path.is_absolute() else PROJECT_ROOT / path


def get_settings(env_file: Optional[Path] = None) -> Settings:
    """Build Settings from the environment, loading .env first."""
    load_dotenv(env_file or PROJECT_ROOT / ".env")

    weekday = _int_env("WEEKLY_SNAPSHOT_WEEKDAY", 2)
    if not 0 <= weekday <= 6:
        raise ConfigError(
            f"WEEKLY_SNAPSHOT_WEEKDAY must be 0-6 (Monday=0), got {weekday}",
            setting="WEEKLY_SNAPSHOT_WEEKDAY",
        )

    max_age = _float_env("ARTIFACT_MAX_AGE", DEFAULT_ARTIFACT_MAX_AGE)

    page_size = _int_env("BREVO_PAGE_SIZE", 1000)
    if page_size <= 0:
        raise ConfigError("BREVO_PAGE_SIZE must be positive", setting="BREVO_PAGE_SIZE")

    return Settings(
        brevo_api_key=os.getenv("BREVO_API_KEY") or None,
        brevo_base_url=os.getenv("BREVO_BASE_URL", DEFAULT_BREVO_BASE_URL),
        datasets_path=_path_env("DATASETS_PATH", PROJECT_ROOT / "data" / "datasets.json"),
        history_path=_path_env("HISTORY_PATH", PROJECT_ROOT / "data" / "historical-data.json"),
        datasets_url=os.getenv("DATASETS_URL") or None,
        history_url=os.getenv("HISTORY_URL") or None,
        page_size=page_size,
        request_timeout=_float_env("BREVO_TIMEOUT", 30.0),
        page_delay=_float_env("BREVO_PAGE_DELAY", 0.1),
        platform_list_id=_int_env("PLATFORM_LIST_ID", 6),
        webinar_list_id=_int_env("WEBINAR_LIST_ID", 69),
        weekly_snapshot_weekday=weekday,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        dashboard_port=_int_env("DASHBOARD_PORT", 8001),
        cors_origins=[
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
            if origin.strip()
        ],
        artifact_max_age=max_age if max_age > 0 else None,
    )
