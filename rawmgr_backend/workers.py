"""
Dedicated worker pool for blocking filesystem and container work.

Stat calls, directory listings, EXIF parsing, preview scanning and renames all
run here so the event loop never blocks on disk I/O.
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

from .config import EXTRACT_WORKERS
from .shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_WORKER_EXECUTOR = ThreadPoolExecutor(max_workers=EXTRACT_WORKERS, thread_name_prefix="rawmgr-worker")


async def run_in_worker(fn: Callable[..., T], *args: Any) -> T:
    """Run `fn(*args)` on the worker pool. Exceptions propagate to the caller."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_WORKER_EXECUTOR, fn, *args)


async def run_blocking(fn: Callable[..., T], *args: Any, label: str = "") -> Result[T]:
    """
    Run `fn(*args)` on the worker pool and wrap the outcome.

    A worker failure becomes `Err(WORKER_ERROR)` with the exception attached in
    `meta["exception"]` so callers can map OS errors precisely.
    """
    try:
        value = await run_in_worker(fn, *args)
    except Exception as exc:
        logger.warning("Worker task %s failed: %s", label or getattr(fn, "__name__", "<task>"), exc)
        return Result.Err(ErrorCode.WORKER_ERROR, str(exc), exception=exc)
    return Result.Ok(value)
