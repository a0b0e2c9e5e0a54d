"""
SQLite adapter for the metadata cache.

One aiosqlite connection lives on a dedicated event-loop thread, so callers on
any loop can share it. Statements are serialized by an asyncio lock owned by
that loop. A transaction holds the lock from BEGIN until COMMIT/ROLLBACK; its
own statements find their way past the lock through a context variable.

The adapter never raises to callers; it returns `Result(...)`.
"""

from __future__ import annotations

import asyncio
import contextvars
import sqlite3
import threading
import uuid
from collections.abc import Awaitable, Callable
from concurrent.futures import Future
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite

from ...config import DB_QUERY_TIMEOUT, DB_TIMEOUT
from ...shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)

SQLITE_BUSY_TIMEOUT_MS = max(1000, int(float(DB_TIMEOUT) * 1000))

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA temp_store=MEMORY",
    f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}",
)

_BEGIN = {
    "deferred": "BEGIN DEFERRED",
    "immediate": "BEGIN IMMEDIATE",
    "exclusive": "BEGIN EXCLUSIVE",
}

_TX_TOKEN: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("rawmgr_db_tx_token", default=None)

Work = Callable[[aiosqlite.Connection], Awaitable[Result[Any]]]


class _LoopThread:
    """Event loop running on a daemon thread."""

    def __init__(self, name: str):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()

    def submit(self, coro) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def call(self, coro):
        """Block the calling thread until `coro` finishes on the loop."""
        return self.submit(coro).result()

    def stop(self) -> None:
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._loop.stop)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=2)


async def _run_sql(conn: aiosqlite.Connection, query: str, params: Optional[tuple], fetch: bool) -> Result[Any]:
    async with conn.execute(query, params or ()) as cursor:
        if fetch:
            rows = await cursor.fetchall()
            return Result.Ok([dict(row) for row in rows])
        return Result.Ok(max(cursor.rowcount, 0))


class Sqlite:
    """
    Async SQLite access for the `files` and `metadata` tables.

    Usage:
        db = Sqlite("data/raw-manager.db")
        rows = await db.aquery("SELECT path FROM files WHERE path = ?", (rel,))
        async with db.atransaction() as tx:
            ...
        await db.aclose()
    """

    def __init__(self, db_path: str, timeout: float = 30.0):
        self.db_path = Path(db_path)
        self._timeout = float(timeout)
        self._query_timeout = float(DB_QUERY_TIMEOUT or 0.0)
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock: Optional[asyncio.Lock] = None
        self._tx_owner: Optional[str] = None
        self._closed = False

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._loop = _LoopThread("rawmgr-db-loop")
        try:
            self._loop.call(self._open())
        except Exception as exc:
            logger.error("Failed to open database %s: %s", self.db_path, exc)
            self._loop.stop()
            raise
        logger.info("Database opened: %s", self.db_path)

    async def _open(self) -> None:
        # Autocommit; transactions are explicit BEGIN/COMMIT.
        conn = await aiosqlite.connect(str(self.db_path), timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        for pragma in _PRAGMAS:
            async with conn.execute(pragma):
                pass
        self._conn = conn
        self._lock = asyncio.Lock()

    async def _guarded(self, work: Work) -> Result[Any]:
        conn = self._conn
        if conn is None:
            return Result.Err(ErrorCode.DB_ERROR, "Database is closed")
        try:
            if self._query_timeout > 0:
                return await asyncio.wait_for(work(conn), timeout=self._query_timeout)
            return await work(conn)
        except asyncio.TimeoutError:
            return Result.Err(ErrorCode.TIMEOUT, "Database operation timed out")
        except sqlite3.IntegrityError as exc:
            logger.warning("Integrity error: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, f"Integrity error: {exc}")
        except sqlite3.Error as exc:
            logger.error("Database error: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, str(exc))

    async def _dispatch(self, token: Optional[str], work: Work) -> Result[Any]:
        """Runs on the DB loop: statements of the open transaction skip the lock."""
        if token is not None:
            if token != self._tx_owner:
                return Result.Err(ErrorCode.DB_ERROR, "Transaction is no longer active")
            return await self._guarded(work)
        assert self._lock is not None
        async with self._lock:
            return await self._guarded(work)

    async def _submit(self, coro) -> Any:
        return await asyncio.wrap_future(self._loop.submit(coro))

    async def aexecute(self, query: str, params: Optional[tuple] = None, fetch: bool = False) -> Result[Any]:
        """Execute one statement. Writes return the affected row count, `fetch` returns rows as dicts."""
        if self._closed:
            return Result.Err(ErrorCode.DB_ERROR, "Database is closed")

        async def _work(conn: aiosqlite.Connection) -> Result[Any]:
            return await _run_sql(conn, query, params, fetch)

        return await self._submit(self._dispatch(_TX_TOKEN.get(), _work))

    async def aquery(self, sql: str, params: Optional[tuple] = None) -> Result[List[Dict[str, Any]]]:
        return await self.aexecute(sql, params, fetch=True)

    async def aexecutescript(self, script: str) -> Result[bool]:
        """Execute a multi-statement script; not allowed inside a transaction."""
        if self._closed:
            return Result.Err(ErrorCode.DB_ERROR, "Database is closed")
        if _TX_TOKEN.get() is not None:
            return Result.Err(ErrorCode.DB_ERROR, "Scripts cannot run inside a transaction")

        async def _work(conn: aiosqlite.Connection) -> Result[bool]:
            await conn.executescript(script)
            return Result.Ok(True)

        return await self._submit(self._dispatch(None, _work))

    async def ahas_table(self, table_name: str) -> bool:
        result = await self.aquery(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
            (table_name,),
        )
        return bool(result.ok and result.data)

    async def aget_schema_version(self) -> int:
        """Schema version from the `metadata` table (0 if missing)."""
        if not await self.ahas_table("metadata"):
            return 0
        result = await self.aquery("SELECT value FROM metadata WHERE key = 'schema_version'")
        if not result.ok or not result.data:
            return 0
        try:
            return int(result.data[0]["value"])
        except (ValueError, KeyError, TypeError):
            logger.warning("Invalid schema_version value in database")
            return 0

    async def aset_schema_version(self, version: int) -> Result[Any]:
        return await self.aexecute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES ('schema_version', ?)",
            (str(version),),
        )

    async def _begin(self, mode: str) -> Result[str]:
        if self._conn is None or self._lock is None:
            return Result.Err(ErrorCode.DB_ERROR, "Database is closed")
        await self._lock.acquire()
        begin = _BEGIN.get(str(mode).lower(), "BEGIN IMMEDIATE")
        try:
            async with self._conn.execute(begin):
                pass
        except sqlite3.Error as exc:
            self._lock.release()
            return Result.Err(ErrorCode.DB_ERROR, str(exc))
        token = uuid.uuid4().hex
        self._tx_owner = token
        return Result.Ok(token)

    async def _finish(self, token: str, *, commit: bool) -> Result[bool]:
        if token != self._tx_owner or self._conn is None:
            return Result.Err(ErrorCode.DB_ERROR, "Transaction is no longer active")
        try:
            async with self._conn.execute("COMMIT" if commit else "ROLLBACK"):
                pass
            return Result.Ok(True)
        except sqlite3.Error as exc:
            if commit:
                try:
                    async with self._conn.execute("ROLLBACK"):
                        pass
                except sqlite3.Error as rb_exc:
                    logger.warning("Rollback after failed commit also failed: %s", rb_exc)
            return Result.Err(ErrorCode.DB_ERROR, str(exc))
        finally:
            self._tx_owner = None
            if self._lock is not None and self._lock.locked():
                self._lock.release()

    @asynccontextmanager
    async def atransaction(self, mode: str = "immediate"):
        """
        Async context manager for a DB transaction.

        Yields a Result: callers must check `tx.ok` before issuing statements.
        An exception inside the block rolls the transaction back and re-raises;
        a failed commit is reported by flipping the yielded Result to an error.
        """
        if self._closed:
            yield Result.Err(ErrorCode.DB_ERROR, "Database is closed")
            return
        begun = await self._submit(self._begin(mode))
        if not begun.ok:
            yield Result.Err(ErrorCode.DB_ERROR, begun.error or "Failed to begin transaction")
            return

        token = str(begun.data)
        tx_state: Result[bool] = Result.Ok(True)
        token_handle = _TX_TOKEN.set(token)
        try:
            yield tx_state
        except BaseException:
            await self._submit(self._finish(token, commit=False))
            raise
        else:
            committed = await self._submit(self._finish(token, commit=True))
            if not committed.ok:
                tx_state.ok = False
                tx_state.code = ErrorCode.DB_ERROR.value
                tx_state.error = committed.error or "Commit failed"
        finally:
            _TX_TOKEN.reset(token_handle)

    async def _close_conn(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        if self._tx_owner is not None:
            logger.warning("Closing database with an open transaction; rolling back")
            self._tx_owner = None
        await conn.close()

    async def aclose(self) -> None:
        """Close the connection and stop the DB loop thread."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._submit(self._close_conn())
        finally:
            self._loop.stop()
