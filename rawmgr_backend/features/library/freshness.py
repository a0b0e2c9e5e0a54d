"""
Freshness coordination between the live filesystem and the metadata cache.

A cached record is served as-is only while its (file_size, last_modified) token
matches the live file and its orientation has been extracted at least once.
Anything else triggers a lazy re-extraction that keeps the user's rating and
tags.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ...shared import ErrorCode, Result, get_logger, is_supported_raw, library_path_context, log_structured, to_unix_seconds
from ...workers import run_blocking
from ..metadata import MetadataService
from .models import ORIENTATION_NONE_FOUND, BrowseEntry, FileRecord, normalize_tags
from .root import LibraryContext, ResolvedPath
from .store import FileRecordStore

logger = get_logger(__name__)


class FreshnessState(str, Enum):
    NO_RECORD = "no_record"
    STALE_MISSING_ATTRIBUTE = "stale_missing_attribute"
    STALE_SIZE_OR_TIME = "stale_size_or_time"
    FRESH = "fresh"


def classify(record: FileRecord | None, file_size: int, last_modified: int) -> FreshnessState:
    if record is None:
        return FreshnessState.NO_RECORD
    if int(record.file_size) != int(file_size) or int(record.last_modified) != int(last_modified):
        return FreshnessState.STALE_SIZE_OR_TIME
    if record.orientation is None:
        return FreshnessState.STALE_MISSING_ATTRIBUTE
    return FreshnessState.FRESH


@dataclass(frozen=True)
class LiveStat:
    is_file: bool
    is_dir: bool
    size: int
    mtime: int


def _stat(path: Path) -> LiveStat:
    st = path.stat()
    is_dir = path.is_dir()
    return LiveStat(is_file=path.is_file(), is_dir=is_dir, size=int(st.st_size), mtime=to_unix_seconds(st.st_mtime))


def _list_dir(path: Path) -> list[tuple[str, bool, int, int]]:
    """(name, is_dir, size, mtime) for each entry; unreadable entries report 0/0."""
    out: list[tuple[str, bool, int, int]] = []
    with os.scandir(path) as it:
        for entry in it:
            try:
                is_dir = entry.is_dir()
            except OSError:
                is_dir = False
            try:
                st = entry.stat()
                size, mtime = int(st.st_size), to_unix_seconds(st.st_mtime)
            except OSError:
                size, mtime = 0, 0
            out.append((entry.name, is_dir, size, mtime))
    return out


def _join_rel(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def _map_os_error(outcome: Result, fallback: str) -> Result:
    exc = outcome.meta.get("exception")
    if isinstance(exc, FileNotFoundError):
        return Result.Err(ErrorCode.NOT_FOUND, "File not found")
    if isinstance(exc, PermissionError):
        return Result.Err(ErrorCode.PERMISSION_DENIED, "Permission denied")
    if isinstance(exc, NotADirectoryError):
        return Result.Err(ErrorCode.INVALID_INPUT, "Not a directory")
    return Result.Err(ErrorCode.WORKER_ERROR, outcome.error or fallback)


def _validate_rating(rating) -> Result[int | None]:
    if rating is None:
        return Result.Ok(None)
    if isinstance(rating, bool):
        return Result.Err(ErrorCode.INVALID_INPUT, "Rating must be an integer between 0 and 5")
    try:
        value = int(rating)
    except (TypeError, ValueError):
        return Result.Err(ErrorCode.INVALID_INPUT, "Rating must be an integer between 0 and 5")
    if isinstance(rating, float) and rating != value:
        return Result.Err(ErrorCode.INVALID_INPUT, "Rating must be an integer between 0 and 5")
    if not 0 <= value <= 5:
        return Result.Err(ErrorCode.INVALID_INPUT, "Rating must be between 0 and 5")
    return Result.Ok(value)


class FreshnessCoordinator:
    def __init__(self, library: LibraryContext, store: FileRecordStore, metadata: MetadataService):
        self._library = library
        self._store = store
        self._metadata = metadata

    async def _resolve_file(self, rel: str) -> Result[tuple[ResolvedPath, LiveStat]]:
        resolved = await self._library.resolve(rel)
        if not resolved.ok:
            return Result.Err(resolved.code, resolved.error or "Invalid path")
        target = resolved.data
        if target.is_root:
            return Result.Err(ErrorCode.INVALID_INPUT, "Not a file")
        stat = await run_blocking(_stat, target.path, label="stat")
        if not stat.ok:
            return _map_os_error(stat, "Failed to stat file")
        if not stat.data.is_file:
            return Result.Err(ErrorCode.INVALID_INPUT, "Not a file")
        return Result.Ok((target, stat.data))

    async def _resync(self, target: ResolvedPath, live: LiveStat, prior: FileRecord | None) -> Result[FileRecord]:
        extracted = await self._metadata.extract(target.path)
        if not extracted.ok:
            return Result.Err(extracted.code, extracted.error or "Metadata extraction failed")
        meta = extracted.data
        record = FileRecord(
            path=target.rel,
            file_size=live.size,
            last_modified=live.mtime,
            camera_rating=meta.camera_rating,
            user_rating=prior.user_rating if prior else None,
            tags=list(prior.tags) if prior else [],
            gps_lat=meta.gps_lat,
            gps_lon=meta.gps_lon,
            taken_at=meta.taken_at,
            orientation=meta.orientation if meta.orientation is not None else ORIENTATION_NONE_FOUND,
        )
        stored = await self._store.upsert_full(record)
        if not stored.ok:
            return Result.Err(stored.code, stored.error or "Failed to store metadata")
        return Result.Ok(record)

    async def get_file_metadata(self, rel: str) -> Result[FileRecord]:
        """Return the cached record for `rel`, re-extracting it first when stale."""
        found = await self._resolve_file(rel)
        if not found.ok:
            return Result.Err(found.code, found.error or "Invalid path")
        target, live = found.data

        existing = await self._store.get(target.rel)
        if not existing.ok:
            return Result.Err(existing.code, existing.error or "Failed to read metadata")
        state = classify(existing.data, live.size, live.mtime)
        if state is FreshnessState.FRESH:
            return Result.Ok(existing.data, state=state.value)

        with library_path_context(target.rel):
            log_structured(logger, logging.DEBUG, "metadata_resync", state=state.value)
            res = await self._resync(target, live, existing.data)
        if not res.ok:
            return res
        return Result.Ok(res.data, state=state.value)

    async def browse(self, rel: str = "") -> Result[list[BrowseEntry]]:
        """
        List a library directory, joining live stat with the cache.

        Never extracts; each file entry carries `needs_scan` instead.
        """
        resolved = await self._library.resolve(rel)
        if not resolved.ok:
            return Result.Err(resolved.code, resolved.error or "Invalid path")
        target = resolved.data

        listing = await run_blocking(_list_dir, target.path, label="list_dir")
        if not listing.ok:
            return _map_os_error(listing, "Failed to list directory")

        dirs: list[BrowseEntry] = []
        files: list[tuple[str, str, int, int]] = []
        for name, is_dir, size, mtime in listing.data:
            entry_rel = _join_rel(target.rel, name)
            if is_dir:
                dirs.append(BrowseEntry(name=name, path=entry_rel, kind="dir", modified=mtime))
            elif is_supported_raw(name):
                files.append((name, entry_rel, size, mtime))

        records = await self._store.get_many(rel_path for _, rel_path, _, _ in files)
        if not records.ok:
            return Result.Err(records.code, records.error or "Failed to read metadata")
        cached = records.data

        file_entries = []
        for name, entry_rel, size, mtime in files:
            record = cached.get(entry_rel)
            file_entries.append(
                BrowseEntry(
                    name=name,
                    path=entry_rel,
                    kind="file",
                    size=size,
                    modified=mtime,
                    record=record,
                    needs_scan=classify(record, size, mtime) is not FreshnessState.FRESH,
                )
            )

        dirs.sort(key=lambda e: e.name.lower())
        file_entries.sort(key=lambda e: e.name.lower())
        return Result.Ok(dirs + file_entries)

    async def _prepare_edit(self, rel: str) -> Result[tuple[ResolvedPath, LiveStat]]:
        # Stamping the live token onto a record whose derived fields predate it
        # would hide the change, so resync those first.
        found = await self._resolve_file(rel)
        if not found.ok:
            return found
        target, live = found.data
        existing = await self._store.get(target.rel)
        if not existing.ok:
            return Result.Err(existing.code, existing.error or "Failed to read metadata")
        if classify(existing.data, live.size, live.mtime) is FreshnessState.STALE_SIZE_OR_TIME:
            with library_path_context(target.rel):
                synced = await self._resync(target, live, existing.data)
            if not synced.ok:
                return Result.Err(synced.code, synced.error or "Metadata extraction failed")
        return found

    async def set_rating(self, rel: str, rating: int | None) -> Result[FileRecord]:
        valid = _validate_rating(rating)
        if not valid.ok:
            return Result.Err(valid.code, valid.error or "Invalid rating")
        found = await self._prepare_edit(rel)
        if not found.ok:
            return Result.Err(found.code, found.error or "Invalid path")
        target, live = found.data

        res = await self._store.upsert_rating(target.rel, valid.data, live.size, live.mtime)
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to update rating")
        return await self._reload(target.rel)

    async def set_tags(self, rel: str, tags) -> Result[FileRecord]:
        if tags is not None and (isinstance(tags, (str, bytes)) or not hasattr(tags, "__iter__")):
            return Result.Err(ErrorCode.INVALID_INPUT, "Tags must be a list of strings")
        found = await self._prepare_edit(rel)
        if not found.ok:
            return Result.Err(found.code, found.error or "Invalid path")
        target, live = found.data

        res = await self._store.upsert_tags(target.rel, normalize_tags(tags), live.size, live.mtime)
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to update tags")
        return await self._reload(target.rel)

    async def list_tags(self) -> Result[list[str]]:
        return await self._store.list_tags()

    async def _reload(self, rel: str) -> Result[FileRecord]:
        res = await self._store.get(rel)
        if not res.ok:
            return Result.Err(res.code, res.error or "Failed to read metadata")
        if res.data is None:
            return Result.Err(ErrorCode.INTERNAL, "Record vanished after update")
        return Result.Ok(res.data)
