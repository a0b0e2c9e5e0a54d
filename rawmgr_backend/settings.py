"""
Application settings persisted in the local metadata store.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from .shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)

_LIBRARY_ROOT_KEY = "library_root"


class AppSettings:
    """
    Simple settings manager backed by the metadata table.
    """

    def __init__(self, db):
        self._db = db
        self._lock = asyncio.Lock()

    async def _read_setting(self, key: str) -> Optional[str]:
        result = await self._db.aquery("SELECT value FROM metadata WHERE key = ?", (key,))
        if not result.ok or not result.data:
            return None
        raw = result.data[0].get("value")
        if isinstance(raw, str):
            return raw.strip()
        return None

    async def _write_setting(self, key: str, value: str) -> Result[int]:
        return await self._db.aexecute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            (key, value),
        )

    async def _delete_setting(self, key: str) -> Result[int]:
        return await self._db.aexecute("DELETE FROM metadata WHERE key = ?", (key,))

    async def get_library_root(self) -> Optional[str]:
        async with self._lock:
            value = await self._read_setting(_LIBRARY_ROOT_KEY)
        return value or None

    async def set_library_root(self, raw: str | None) -> Result[str | None]:
        async with self._lock:
            if not raw:
                res = await self._delete_setting(_LIBRARY_ROOT_KEY)
            else:
                res = await self._write_setting(_LIBRARY_ROOT_KEY, str(raw))
        if not res.ok:
            logger.warning("Failed to persist library root: %s", res.error)
            return Result.Err(ErrorCode.DB_ERROR, res.error or "Failed to persist library root")
        return Result.Ok(raw or None)
