"""
Path-keyed metadata cache (the `files` table).

Rows are keyed by the `/`-separated path relative to the library root.
Prefix operations match `prefix` itself plus everything strictly under
`prefix/`; the comparison is exact and case-sensitive, so `a/b` never touches
`a/bb` or `A/b`.
"""
from __future__ import annotations

from collections.abc import Iterable

from ...shared import ErrorCode, Result, get_logger
from .models import FileRecord, tags_from_json, tags_to_json

logger = get_logger(__name__)

_GET_MANY_CHUNK = 500

_SELECT_COLUMNS = (
    "path, camera_rating, user_rating, tags, gps_lat, gps_lon, taken_at, orientation, file_size, last_modified"
)

# `path = :prefix OR path starts with :prefix || '/'`
_PREFIX_CLAUSE = "(path = ? OR substr(path, 1, ?) = ?)"


class _TransactionAborted(Exception):
    def __init__(self, result: Result):
        super().__init__(result.error)
        self.result = result


def _prefix_params(prefix: str) -> tuple:
    boundary = f"{prefix}/"
    return (prefix, len(boundary), boundary)


def _clean_key(path: str) -> str:
    return str(path or "").strip("/")


class FileRecordStore:
    def __init__(self, db):
        self.db = db

    async def get(self, path: str) -> Result[FileRecord | None]:
        res = await self.db.aquery(f"SELECT {_SELECT_COLUMNS} FROM files WHERE path = ?", (path,))
        if not res.ok:
            return Result.Err(ErrorCode.DB_ERROR, res.error or "Failed to read record")
        rows = res.data or []
        return Result.Ok(FileRecord.from_row(rows[0]) if rows else None)

    async def get_many(self, paths: Iterable[str]) -> Result[dict[str, FileRecord]]:
        wanted = list(dict.fromkeys(p for p in paths if p))
        out: dict[str, FileRecord] = {}
        for i in range(0, len(wanted), _GET_MANY_CHUNK):
            chunk = wanted[i:i + _GET_MANY_CHUNK]
            placeholders = ",".join("?" for _ in chunk)
            res = await self.db.aquery(
                f"SELECT {_SELECT_COLUMNS} FROM files WHERE path IN ({placeholders})",
                tuple(chunk),
            )
            if not res.ok:
                return Result.Err(ErrorCode.DB_ERROR, res.error or "Failed to read records")
            for row in res.data or []:
                record = FileRecord.from_row(row)
                out[record.path] = record
        return Result.Ok(out)

    async def upsert_full(self, record: FileRecord) -> Result[FileRecord]:
        """Insert or replace every column of `record`."""
        res = await self.db.aexecute(
            """
            INSERT INTO files (
                path, camera_rating, user_rating, tags, gps_lat, gps_lon,
                taken_at, orientation, file_size, last_modified
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                camera_rating = excluded.camera_rating,
                user_rating = excluded.user_rating,
                tags = excluded.tags,
                gps_lat = excluded.gps_lat,
                gps_lon = excluded.gps_lon,
                taken_at = excluded.taken_at,
                orientation = excluded.orientation,
                file_size = excluded.file_size,
                last_modified = excluded.last_modified
            """,
            (
                record.path,
                record.camera_rating,
                record.user_rating,
                tags_to_json(record.tags),
                record.gps_lat,
                record.gps_lon,
                record.taken_at,
                record.orientation,
                int(record.file_size),
                int(record.last_modified),
            ),
        )
        if not res.ok:
            logger.warning("Failed to store record for %s: %s", record.path, res.error)
            return Result.Err(ErrorCode.DB_ERROR, res.error or "Failed to store record")
        return Result.Ok(record)

    async def upsert_rating(self, path: str, rating: int | None, file_size: int, last_modified: int) -> Result[bool]:
        """
        Set `user_rating` and the freshness token.

        A new row starts with empty tags; an existing row keeps its tags.
        """
        res = await self.db.aexecute(
            """
            INSERT INTO files (path, user_rating, tags, file_size, last_modified)
            VALUES (?, ?, '[]', ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                user_rating = excluded.user_rating,
                file_size = excluded.file_size,
                last_modified = excluded.last_modified
            """,
            (path, rating, int(file_size), int(last_modified)),
        )
        if not res.ok:
            return Result.Err(ErrorCode.DB_ERROR, res.error or "Failed to update rating")
        return Result.Ok(True)

    async def upsert_tags(self, path: str, tags: list[str], file_size: int, last_modified: int) -> Result[bool]:
        """
        Set `tags` and the freshness token.

        A new row starts with no user rating; an existing row keeps its rating.
        """
        res = await self.db.aexecute(
            """
            INSERT INTO files (path, user_rating, tags, file_size, last_modified)
            VALUES (?, NULL, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                tags = excluded.tags,
                file_size = excluded.file_size,
                last_modified = excluded.last_modified
            """,
            (path, tags_to_json(tags), int(file_size), int(last_modified)),
        )
        if not res.ok:
            return Result.Err(ErrorCode.DB_ERROR, res.error or "Failed to update tags")
        return Result.Ok(True)

    async def delete(self, path: str) -> Result[int]:
        res = await self.db.aexecute("DELETE FROM files WHERE path = ?", (path,))
        if not res.ok:
            return Result.Err(ErrorCode.DB_ERROR, res.error or "Failed to delete record")
        return Result.Ok(int(res.data or 0))

    async def delete_prefix(self, prefix: str) -> Result[int]:
        """Delete `prefix` and every record below `prefix/`."""
        prefix = _clean_key(prefix)
        if not prefix:
            return Result.Err(ErrorCode.INVALID_INPUT, "Refusing to delete the library root")
        res = await self.db.aexecute(f"DELETE FROM files WHERE {_PREFIX_CLAUSE}", _prefix_params(prefix))
        if not res.ok:
            return Result.Err(ErrorCode.DB_ERROR, res.error or "Failed to delete records")
        removed = int(res.data or 0)
        logger.debug("Removed %d record(s) under %s", removed, prefix)
        return Result.Ok(removed)

    async def _run_in_transaction(self, statements: list[tuple[str, tuple]], label: str) -> Result[int]:
        """Run statements atomically; returns the row count of the last one."""
        last = 0
        try:
            async with self.db.atransaction(mode="immediate") as tx:
                if not tx.ok:
                    return Result.Err(ErrorCode.DB_ERROR, tx.error or f"{label}: cannot begin transaction")
                for sql, params in statements:
                    res = await self.db.aexecute(sql, params)
                    if not res.ok:
                        raise _TransactionAborted(Result.Err(ErrorCode.DB_ERROR, res.error or f"{label} failed"))
                    last = int(res.data or 0)
            if not tx.ok:
                return Result.Err(ErrorCode.DB_ERROR, tx.error or f"{label}: commit failed")
        except _TransactionAborted as aborted:
            logger.warning("%s rolled back: %s", label, aborted.result.error)
            return aborted.result
        return Result.Ok(last)

    async def move(self, src: str, dst: str) -> Result[int]:
        """
        Rewrite one record's path; a stale record already at `dst` is dropped.

        Repeating a move whose source record is already gone changes nothing.
        """
        if src == dst:
            return Result.Ok(0)
        return await self._run_in_transaction(
            [
                (
                    "DELETE FROM files WHERE path = ? AND EXISTS (SELECT 1 FROM files WHERE path = ?)",
                    (dst, src),
                ),
                ("UPDATE files SET path = ? WHERE path = ?", (dst, src)),
            ],
            "move",
        )

    async def move_prefix(self, src_prefix: str, dst_prefix: str) -> Result[int]:
        """
        Rewrite `src_prefix` and all descendants to live under `dst_prefix`.

        The suffix after the prefix is preserved. Stale records at the
        destination are dropped first, in the same transaction, but only while
        source records still exist.
        """
        src = _clean_key(src_prefix)
        dst = _clean_key(dst_prefix)
        if not src or not dst:
            return Result.Err(ErrorCode.INVALID_INPUT, "Prefix must not be the library root")
        if src == dst:
            return Result.Ok(0)
        if dst.startswith(f"{src}/"):
            return Result.Err(ErrorCode.INVALID_INPUT, "Cannot move a folder into itself")

        src_params = _prefix_params(src)
        dst_params = _prefix_params(dst)
        return await self._run_in_transaction(
            [
                (
                    f"DELETE FROM files WHERE {_PREFIX_CLAUSE} AND NOT {_PREFIX_CLAUSE}"
                    f" AND EXISTS (SELECT 1 FROM files WHERE {_PREFIX_CLAUSE})",
                    dst_params + src_params + src_params,
                ),
                (
                    f"UPDATE files SET path = ? || substr(path, ?) WHERE {_PREFIX_CLAUSE}",
                    (dst, len(src) + 1) + src_params,
                ),
            ],
            "move_prefix",
        )

    async def list_tags(self) -> Result[list[str]]:
        """Distinct tags across all records, case-insensitively de-duplicated and sorted."""
        res = await self.db.aquery(
            """
            SELECT DISTINCT tags
            FROM files
            WHERE tags IS NOT NULL AND tags != '[]'
            """
        )
        if not res.ok:
            return Result.Err(ErrorCode.DB_ERROR, res.error or "Failed to list tags")
        seen: dict[str, str] = {}
        for row in res.data or []:
            for tag in tags_from_json(row.get("tags")):
                text = tag.strip()
                if text and text.casefold() not in seen:
                    seen[text.casefold()] = text
        return Result.Ok(sorted(seen.values(), key=lambda t: (t.casefold(), t)))
