"""
Preview service - resolves library paths and generates cached previews.
"""
from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

from ...config import PREVIEW_STREAM_CHUNK_BYTES, THUMB_JPEG_QUALITY, THUMB_MAX_EDGE
from ...shared import ErrorCode, Result, get_logger, is_supported_raw
from ...workers import run_blocking, run_in_worker
from ..library.root import LibraryContext
from .cache import PreviewKind, ensure_preview, ensure_thumbnail, preview_cache_path

logger = get_logger(__name__)


def _read_chunk(path: Path, offset: int, size: int) -> bytes:
    with path.open("rb") as handle:
        handle.seek(offset)
        return handle.read(size)


class PreviewService:
    def __init__(self, library: LibraryContext, preview_dir: Path | str, thumb_max_edge: int = THUMB_MAX_EDGE):
        self._library = library
        self._preview_dir = Path(preview_dir)
        self._thumb_max_edge = int(thumb_max_edge)

    @property
    def preview_dir(self) -> Path:
        return self._preview_dir

    async def ensure(self, rel: str, kind: PreviewKind | str = PreviewKind.FULL) -> Result[Path]:
        """
        Return the cache path of a preview for the library file `rel`.

        "No embedded JPEG" is reported as NOT_FOUND; unreadable sources surface
        their own error codes.
        """
        resolved = await self._library.resolve(rel)
        if not resolved.ok:
            return Result.Err(resolved.code, resolved.error or "Invalid path")
        target = resolved.data
        if not is_supported_raw(target.path.name):
            return Result.Err(ErrorCode.INVALID_INPUT, "Unsupported file type")

        preview_kind = PreviewKind.parse(kind)
        full_dest = preview_cache_path(self._preview_dir, target.rel, PreviewKind.FULL)
        if preview_kind is PreviewKind.THUMB:
            dest = preview_cache_path(self._preview_dir, target.rel, PreviewKind.THUMB)
            outcome = await run_blocking(
                ensure_thumbnail,
                target.path,
                full_dest,
                dest,
                self._thumb_max_edge,
                THUMB_JPEG_QUALITY,
                label="ensure_thumbnail",
            )
        else:
            dest = full_dest
            outcome = await run_blocking(ensure_preview, target.path, dest, label="ensure_preview")

        if not outcome.ok:
            exc = outcome.meta.get("exception")
            if isinstance(exc, FileNotFoundError):
                return Result.Err(ErrorCode.NOT_FOUND, "File not found")
            if isinstance(exc, PermissionError):
                return Result.Err(ErrorCode.PERMISSION_DENIED, "Permission denied")
            return Result.Err(ErrorCode.WORKER_ERROR, outcome.error or "Preview generation failed")
        if not outcome.data:
            return Result.Err(ErrorCode.NOT_FOUND, "No preview available")
        return Result.Ok(dest, kind=preview_kind.value)

    async def stream(self, path: Path | str, chunk_size: int = PREVIEW_STREAM_CHUNK_BYTES) -> AsyncIterator[bytes]:
        """
        Yield a cached preview file in chunks, reading on the worker pool.

        No file handle is held between chunks, so a consumer that stops early
        leaves nothing open.
        """
        path = Path(path)
        offset = 0
        while True:
            chunk = await run_in_worker(_read_chunk, path, offset, chunk_size)
            if not chunk:
                break
            offset += len(chunk)
            yield chunk

