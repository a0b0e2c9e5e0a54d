"""
Mirror filesystem deletes and renames into the metadata cache.

Records are rewritten in place on rename so user ratings and tags follow the
file; preview cache entries are left alone and invalidate by mtime.
"""
from __future__ import annotations

from ...shared import Result, get_logger
from .store import FileRecordStore

logger = get_logger(__name__)


class PathConsistency:
    def __init__(self, store: FileRecordStore):
        self._store = store

    async def forget(self, rel: str, is_dir: bool) -> Result[int]:
        """Drop the record for a deleted file, or every record under a deleted folder."""
        if is_dir:
            res = await self._store.delete_prefix(rel)
        else:
            res = await self._store.delete(rel)
        if not res.ok:
            logger.warning("Failed to forget %s: %s", rel, res.error)
        return res

    async def relocate(self, src: str, dst: str, is_dir: bool) -> Result[int]:
        if is_dir:
            res = await self._store.move_prefix(src, dst)
        else:
            res = await self._store.move(src, dst)
        if not res.ok:
            logger.warning("Failed to relocate %s -> %s: %s", src, dst, res.error)
        else:
            logger.debug("Relocated %s -> %s (%d record(s))", src, dst, res.data or 0)
        return res
