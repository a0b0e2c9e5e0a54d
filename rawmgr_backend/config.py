"""
Configuration for the RAW library manager.
"""
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_raw(*names: str, default: str | None = None) -> str | None:
    for name in names:
        if not name:
            continue
        val = os.getenv(name)
        if val is not None and str(val).strip() != "":
            return str(val).strip()
    return default


def _env_int(default: int, *names: str, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_float(default: float, *names: str, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid float for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _env_bool(default: bool, *names: str) -> bool:
    raw = _env_raw(*names)
    if raw is None:
        return default
    value = raw.lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning("Invalid boolean for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
    return default


# Data directory holds the index database and the preview cache
DATA_DIR_PATH = Path(_env_raw("RAW_MANAGER_DATA_DIR", default="data") or "data").expanduser()
INDEX_DB_PATH = DATA_DIR_PATH / "raw-manager.db"
INDEX_DB = str(INDEX_DB_PATH)

# Library root from the environment wins over the persisted setting
LIBRARY_ROOT_ENV = _env_raw("RAW_MANAGER_LIBRARY_ROOT", "RAW_LIBRARY_ROOT")

# Database tuning
DB_TIMEOUT = _env_float(30.0, "RAW_MANAGER_DB_TIMEOUT", min_value=1.0, max_value=300.0)
DB_QUERY_TIMEOUT = _env_float(60.0, "RAW_MANAGER_DB_QUERY_TIMEOUT", min_value=1.0, max_value=600.0)

# Worker pool for stat/listing/container parsing/preview scanning
EXTRACT_WORKERS = _env_int(
    min(8, (os.cpu_count() or 2) + 2), "RAW_MANAGER_WORKERS", min_value=1, max_value=64
)

# Thumbnails (kind=thumb) are downscaled to this longest edge
THUMB_MAX_EDGE = _env_int(512, "RAW_MANAGER_THUMB_MAX_EDGE", min_value=64, max_value=4096)
THUMB_JPEG_QUALITY = _env_int(85, "RAW_MANAGER_THUMB_QUALITY", min_value=30, max_value=100)

# Mirror external deletes/renames into the cache. Disable with RAW_MANAGER_WATCHER=0
WATCHER_ENABLED = _env_bool(True, "RAW_MANAGER_WATCHER")

# Chunk size for streaming cached previews
PREVIEW_STREAM_CHUNK_BYTES = _env_int(256 * 1024, "RAW_MANAGER_STREAM_CHUNK_BYTES", min_value=4096, max_value=16 * 1024 * 1024)


def initialize_directories(data_dir: Path | None = None) -> None:
    """Create the data and preview directories if missing."""
    base = Path(data_dir) if data_dir is not None else DATA_DIR_PATH
    base.mkdir(parents=True, exist_ok=True)
    (base / "previews").mkdir(parents=True, exist_ok=True)
