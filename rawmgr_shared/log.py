"""
Logging utilities with consistent formatting and emoji indicators.

Every logger lives under the `raw_manager` namespace. Work done on behalf of one
library file can set `library_path_var` so each line it emits is tagged with
that relative path.
"""
import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Final, Iterator

EMOJI_MAP: Final[dict[str, str]] = {
    "DEBUG": "\U0001F50D",
    "INFO": "ℹ️",
    "WARNING": "⚠️",
    "ERROR": "❌",
    "CRITICAL": "\U0001F525",
    "SUCCESS": "✅",
}

PREFIX: Final[str] = "\U0001F4F7 RawManager"
ROOT_LOGGER: Final[str] = "raw_manager"

library_path_var: ContextVar[str] = ContextVar("library_path", default="")

# SUCCESS sits between INFO (20) and WARNING (30)
SUCCESS_LEVEL: Final[int] = 25
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")


class LibraryPathFilter(logging.Filter):
    """Copy `library_path_var` onto the record as `library_path`."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.library_path = library_path_var.get()
        return True


class EmojiFormatter(logging.Formatter):
    """`<prefix> [<emoji>] module {path}: message`"""

    def format(self, record: logging.LogRecord) -> str:
        emoji = EMOJI_MAP.get(record.levelname, "\U0001F4F7")
        rel = str(getattr(record, "library_path", "") or "")
        path_part = f" {{{rel}}}" if rel else ""
        formatter = logging.Formatter(f"{PREFIX} [{emoji}] %(name)s{path_part}: %(message)s")
        return formatter.format(record)


@contextmanager
def library_path_context(rel: str) -> Iterator[None]:
    """Tag log lines emitted inside the block with `rel`."""
    token = library_path_var.set(rel)
    try:
        yield
    finally:
        library_path_var.reset(token)


def _short_name(name: str) -> str:
    if name.startswith("__main__"):
        return "main"
    parts = name.split(".")
    if "features" in parts:
        return ".".join(parts[parts.index("features") + 1:]) or name
    if parts[0].startswith("rawmgr_") and len(parts) > 1:
        return ".".join(parts[1:])
    return name


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Get a `raw_manager.*` logger with emoji formatting.

    Args:
        name: Logger name (usually __name__)
        level: Optional logging level; INFO when the logger is first configured

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(f"{ROOT_LOGGER}.{_short_name(name)}")
    if not any(isinstance(f, LibraryPathFilter) for f in logger.filters):
        logger.addFilter(LibraryPathFilter())

    if level is not None:
        logger.setLevel(level)
    elif not logger.handlers:
        logger.setLevel(logging.INFO)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(EmojiFormatter())
        logger.addHandler(handler)
        logger.propagate = False

    return logger


def log_success(logger: logging.Logger, message: str) -> None:
    logger.log(SUCCESS_LEVEL, message)


def log_structured(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Emit one JSON line: message, UTC timestamp, the current library path and `context`."""
    payload = {
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "library_path": library_path_var.get() or None,
        "context": context,
    }
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
