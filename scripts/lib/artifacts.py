"""
Read side of the published artifacts.

``ArtifactCache`` holds the last parsed artifact for one location (a local
path or an http(s) URL) and re-reads it once a newer copy is published or
the cached copy expires. Each API process
owns its caches; nothing is kept at module level.

Usage:
    from scripts.lib.artifacts import ArtifactCache
    from scripts.lib.snapshot import read_snapshot

    cache = ArtifactCache("data/datasets.json", parser=read_snapshot)
    snapshot = cache.get()          # None when nothing is published yet
    snapshot = cache.refresh()      # re-read now
"""
from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Generic, Optional, Tuple, TypeVar

import requests

from scripts.lib.errors import DataFetchError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar("T")

_MISSING = object()

DEFAULT_MAX_AGE = 300.0  # seconds


def is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def read_artifact(location: str, timeout: float = 30) -> Optional[Any]:
    """Decode the JSON artifact at ``location``.

    Returns None when the artifact does not exist (file absent or HTTP 404).

    Raises:
        DataFetchError: the artifact exists but cannot be read or decoded,
            or the remote host cannot be reached.
    """
    if is_url(location):
        try:
            resp = requests.get(location, timeout=timeout)
        except requests.RequestException as e:
            raise DataFetchError(f"Could not reach {location}: {e}", source=location) from e
        if resp.status_code == 404:
            return None
        if not resp.ok:
            raise DataFetchError(
                f"GET {location} returned {resp.status_code}", source=location,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise DataFetchError(f"{location} did not return JSON", source=location) from e

    path = Path(location)
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        raise DataFetchError(f"Could not read {path}: {e}", source=str(path)) from e


class ArtifactCache(Generic[T]):
    """Lazily loaded view of one artifact that notices republished copies.

    A local file is re-read whenever its stat signature (inode, size, mtime)
    changes, which every atomic publish does. Any location is also re-read
    once the cached copy is older than ``max_age`` seconds (None disables
    expiry). ``invalidate``/``refresh`` force a re-read.
    """

    def __init__(
        self,
        location: str | Path,
        timeout: float = 30,
        parser: Optional[Callable[[Any], T]] = None,
        max_age: Optional[float] = DEFAULT_MAX_AGE,
    ):
        self.location = str(location)
        self.timeout = timeout
        self.parser = parser
        self.max_age = max_age
        self._value: Any = _MISSING
        self._signature: Optional[Tuple[int, int, int]] = None
        self._loaded_at = 0.0
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._value is not _MISSING

    def _file_signature(self) -> Optional[Tuple[int, int, int]]:
        if is_url(self.location):
            return None
        try:
            st = os.stat(self.location)
        except OSError:
            return None
        return (st.st_ino, st.st_size, st.st_mtime_ns)

    def _is_stale(self) -> bool:
        if self.max_age is not None and time.monotonic() - self._loaded_at >= self.max_age:
            return True
        return not is_url(self.location) and self._file_signature() != self._signature

    def get(self) -> Optional[T]:
        """Cached value, re-read when stale. A missing artifact is not cached."""
        with self._lock:
            if self._value is _MISSING or self._is_stale():
                if self._value is not _MISSING:
                    logger.info("Cache stale: %s", self.location)
                signature = self._file_signature()
                value = self._load()
                if value is None:
                    self._value = _MISSING
                    return None
                self._value = value
                self._signature = signature
                self._loaded_at = time.monotonic()
            return self._value

    def invalidate(self) -> None:
        with self._lock:
            self._value = _MISSING
        logger.debug("Cache invalidated for %s", self.location)

    def refresh(self) -> Optional[T]:
        self.invalidate()
        return self.get()

    def _load(self) -> Optional[T]:
        raw = read_artifact(self.location, self.timeout)
        if raw is None:
            logger.info("No artifact published yet at %s", self.location)
            return None
        value = self.parser(raw) if self.parser else raw
        logger.info("Loaded artifact from %s", self.location)
        return value
