"""
Utility functions for the funnel dashboard.
Atomic file writes, tolerant JSON reads and small numeric helpers.

Usage:
    from scripts.lib.utils import atomic_write_json, load_json, safe_div
"""
import json
import os
from pathlib import Path
from typing import Any, Optional

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)


def atomic_write_json(data: Any, file_path: str | Path, indent: int = 2) -> Path:
    """
    Write JSON data to file atomically using temp file + rename.
    A crash mid-write leaves the previous file untouched.

    Args:
        data: JSON-serializable object.
        file_path: Target file path.
        indent: JSON indentation level.

    Returns:
        The path written.

    Raises:
        OSError, TypeError, ValueError: if the file cannot be written or the
        data cannot be serialized. The temp file is removed first.
    """
    file_path = Path(file_path)
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=indent)

        os.replace(temp_path, file_path)
        logger.debug("Atomically wrote JSON to %s", file_path)
        return file_path

    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to write JSON to %s: %s", file_path, e)
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                logger.warning("Could not remove temp file %s", temp_path)
        raise


def load_json(path: str | Path) -> Optional[Any]:
    """Load a JSON file, returning None when it is missing or unreadable."""
    path = Path(path)
    if not path.exists():
        logger.warning("File not found: %s", path)
        return None
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
        logger.error("Failed to load %s: %s", path, exc)
        return None


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Zero-safe division."""
    if denominator == 0:
        return default
    return numerator / denominator
