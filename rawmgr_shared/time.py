"""
Time utilities for timestamps and performance measurement.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager


def now() -> float:
    """Get current timestamp in seconds (float)."""
    return time.time()

def to_unix_seconds(value: float | None) -> int:
    """Truncate a stat timestamp to whole seconds (0 when unknown)."""
    if value is None:
        return 0
    try:
        return max(0, int(value))
    except (TypeError, ValueError, OverflowError):
        return 0

@contextmanager
def timer(label: str, logger: logging.Logger | None = None) -> Iterator[None]:
    """
    Context manager for timing operations.

    Usage:
        with timer("metadata extraction", logger):
            read_metadata(path)
    """
    start = now()
    try:
        yield
    finally:
        elapsed = now() - start
        msg = f"{label} took {elapsed:.3f}s"
        if logger:
            logger.debug(msg)
        else:
            print(msg)
