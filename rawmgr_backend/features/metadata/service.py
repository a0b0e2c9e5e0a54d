"""
Metadata service - runs RAW extraction on the worker pool.
"""
from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from ...shared import ErrorCode, Result, get_logger, timer
from ...workers import run_blocking
from .extractor import ExtractedMeta, read_metadata

logger = get_logger(__name__)

Extractor = Callable[[Path], Result[ExtractedMeta]]


class MetadataService:
    """Async facade over `read_metadata`."""

    def __init__(self, extractor: Extractor | None = None):
        self._extract = extractor or read_metadata

    async def extract(self, path: Path | str) -> Result[ExtractedMeta]:
        target = Path(path)
        with timer(f"metadata extraction {target.name}", logger):
            outcome = await run_blocking(self._extract, target, label="read_metadata")
        if not outcome.ok:
            return Result.Err(ErrorCode.WORKER_ERROR, outcome.error or "Metadata worker failed")
        res = outcome.data
        if res is None:
            return Result.Err(ErrorCode.METADATA_FAILED, "Extractor returned nothing")
        if res.ok and res.data is not None and res.data.is_empty():
            logger.debug("No metadata found in %s", target.name)
        return res
