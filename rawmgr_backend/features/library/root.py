"""
Library root context.

The configured root is published as one immutable snapshot holding both the
raw (as configured) and canonical (symlinks resolved) forms, so readers never
observe one updated without the other.
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from ...path_utils import is_same_or_child, safe_rel_path, to_rel_key
from ...shared import AsyncRWLock, ErrorCode, Result, get_logger, log_success
from ...workers import run_blocking

logger = get_logger(__name__)

RootListener = Callable[["LibraryRoot"], Awaitable[None]]


@dataclass(frozen=True)
class LibraryRoot:
    raw: str
    canonical: Path


@dataclass(frozen=True)
class ResolvedPath:
    root: LibraryRoot
    rel: str
    path: Path

    @property
    def is_root(self) -> bool:
        return self.rel == ""


def _canonicalize_root(raw: str) -> Path:
    path = Path(raw).expanduser().resolve(strict=True)
    if not path.is_dir():
        raise NotADirectoryError(raw)
    return path


def _canonicalize_under(root: Path, rel: Path, must_exist: bool) -> Path:
    return (root / rel).resolve(strict=must_exist)


class LibraryContext:
    def __init__(self, settings=None):
        self._settings = settings
        self._lock = AsyncRWLock()
        self._root: LibraryRoot | None = None
        self._listeners: list[RootListener] = []

    def add_listener(self, listener: RootListener) -> None:
        self._listeners.append(listener)

    async def snapshot(self) -> LibraryRoot | None:
        async with self._lock.read():
            return self._root

    async def require(self) -> Result[LibraryRoot]:
        root = await self.snapshot()
        if root is None:
            return Result.Err(ErrorCode.CONFLICT, "Library not configured")
        return Result.Ok(root)

    async def configure(self, raw: str, *, persist: bool = True) -> Result[LibraryRoot]:
        """Canonicalize `raw`, publish it as the new root and optionally persist it."""
        text = str(raw or "").strip()
        if not text or "\x00" in text:
            return Result.Err(ErrorCode.INVALID_INPUT, "Library root is empty")

        canon = await run_blocking(_canonicalize_root, text, label="canonicalize_root")
        if not canon.ok:
            exc = canon.meta.get("exception")
            if isinstance(exc, FileNotFoundError):
                return Result.Err(ErrorCode.NOT_FOUND, "Library root does not exist")
            if isinstance(exc, NotADirectoryError):
                return Result.Err(ErrorCode.INVALID_INPUT, "Library root is not a directory")
            if isinstance(exc, PermissionError):
                return Result.Err(ErrorCode.PERMISSION_DENIED, "Library root is not accessible")
            return Result.Err(ErrorCode.INVALID_INPUT, canon.error or "Invalid library root")

        root = LibraryRoot(raw=text, canonical=canon.data)
        async with self._lock.write():
            self._root = root

        if persist and self._settings is not None:
            saved = await self._settings.set_library_root(text)
            if not saved.ok:
                return Result.Err(saved.code, saved.error or "Failed to persist library root")

        log_success(logger, f"Library root set to {root.canonical}")
        for listener in list(self._listeners):
            try:
                await listener(root)
            except Exception as exc:
                logger.warning("Library root listener failed: %s", exc)
        return Result.Ok(root)

    async def load(self, env_value: str | None = None) -> Result[LibraryRoot | None]:
        """Startup: environment value first, then the persisted setting."""
        if env_value:
            res = await self.configure(env_value, persist=False)
            if not res.ok:
                return Result.Err(res.code, res.error or "Invalid library root")
            return Result.Ok(res.data)
        if self._settings is None:
            return Result.Ok(None)
        stored = await self._settings.get_library_root()
        if not stored:
            logger.info("No library root configured yet")
            return Result.Ok(None)
        res = await self.configure(stored, persist=False)
        if not res.ok:
            logger.warning("Persisted library root is unusable (%s): %s", stored, res.error)
            return Result.Ok(None)
        return Result.Ok(res.data)

    async def resolve(self, rel: str | None, *, must_exist: bool = True) -> Result[ResolvedPath]:
        """
        Map a client relative path onto the canonical filesystem path.

        Errors: CONFLICT without a root, INVALID_INPUT for unsafe paths or paths
        escaping the root, NOT_FOUND when `must_exist` and the path is missing.
        """
        root_res = await self.require()
        if not root_res.ok:
            return Result.Err(root_res.code, root_res.error or "Library not configured")
        root = root_res.data

        safe = safe_rel_path(rel)
        if safe is None:
            return Result.Err(ErrorCode.INVALID_INPUT, "Invalid path")

        canon = await run_blocking(_canonicalize_under, root.canonical, safe, must_exist, label="resolve")
        if not canon.ok:
            exc = canon.meta.get("exception")
            if isinstance(exc, FileNotFoundError):
                return Result.Err(ErrorCode.NOT_FOUND, "Path not found")
            if isinstance(exc, PermissionError):
                return Result.Err(ErrorCode.PERMISSION_DENIED, "Permission denied")
            return Result.Err(ErrorCode.INVALID_INPUT, canon.error or "Invalid path")

        if not is_same_or_child(canon.data, root.canonical):
            return Result.Err(ErrorCode.INVALID_INPUT, "Path escapes library root")
        return Result.Ok(ResolvedPath(root=root, rel=to_rel_key(safe), path=canon.data))
