"""
Filesystem watcher for changes made outside the library manager.

Deletes and renames done by other tools (file managers, import scripts, sync
clients) are mirrored into the metadata cache so user ratings and tags follow
their files. New files need nothing: their metadata is extracted lazily on the
first read.
"""
from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from pathlib import Path
from threading import Lock
from typing import Any

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ...shared import get_logger, is_supported_raw
from .consistency import PathConsistency
from .root import LibraryRoot

logger = get_logger(__name__)

# Directory names never mirrored into the cache
IGNORED_DIRS = {
    "__pycache__",
    ".git",
    ".cache",
    ".thumbs",
}


class LibraryWatchHandler(FileSystemEventHandler):
    """
    Translate watchdog events under `root` into cache updates.

    Runs on the observer thread; the cache calls are scheduled onto `loop`.
    """

    def __init__(self, root: Path | str, consistency: PathConsistency, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self._root = os.path.normpath(str(root))
        self._consistency = consistency
        self._loop = loop

    @property
    def root(self) -> str:
        return self._root

    def _to_rel(self, path: Any) -> str | None:
        """Library-relative key for `path`, or None when outside the root."""
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        if not path:
            return None
        try:
            rel = os.path.relpath(os.path.normpath(str(path)), self._root)
        except ValueError:
            return None
        if rel == "." or rel == ".." or rel.startswith(".." + os.sep):
            return None
        return rel.replace(os.sep, "/")

    @staticmethod
    def _is_ignored(rel: str) -> bool:
        parts = rel.split("/")
        return any(part.lower() in IGNORED_DIRS or part.startswith(".") for part in parts)

    def _submit(self, coro) -> None:
        try:
            asyncio.run_coroutine_threadsafe(coro, self._loop)
        except RuntimeError as exc:
            coro.close()
            logger.debug("Watcher event dropped, loop unavailable: %s", exc)

    def on_deleted(self, event):
        rel = self._to_rel(event.src_path)
        if rel is None or self._is_ignored(rel):
            return
        if event.is_directory:
            self._submit(self._consistency.forget(rel, is_dir=True))
        elif is_supported_raw(rel):
            self._submit(self._consistency.forget(rel, is_dir=False))

    def on_moved(self, event):
        src = self._to_rel(event.src_path)
        dst = self._to_rel(getattr(event, "dest_path", None))
        if src is None or self._is_ignored(src):
            return
        mode = self._moved_mode(src, dst, bool(event.is_directory))
        if mode == "move":
            self._submit(self._consistency.relocate(src, dst, is_dir=bool(event.is_directory)))
        elif mode == "delete":
            self._submit(self._consistency.forget(src, is_dir=bool(event.is_directory)))

    def _moved_mode(self, src: str, dst: str | None, is_dir: bool) -> str:
        if dst is None or self._is_ignored(dst):
            # Moved out of the library (or into a hidden folder)
            return "delete" if (is_dir or is_supported_raw(src)) else "ignore"
        if is_dir:
            return "move"
        src_ok = is_supported_raw(src)
        dst_ok = is_supported_raw(dst)
        if src_ok and dst_ok:
            return "move"
        if src_ok:
            return "delete"
        return "ignore"


class LibraryWatcher:
    """
    Watches the canonical library root.

    Usage:
        watcher = LibraryWatcher(consistency)
        await watcher.start(root.canonical)
        ...
        await watcher.stop()
    """

    def __init__(self, consistency: PathConsistency, observer_factory: Callable[[], Any] = Observer):
        self._consistency = consistency
        self._observer_factory = observer_factory
        self._observer: Any | None = None
        self._handler: LibraryWatchHandler | None = None
        self._lock = Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def watched_path(self) -> str | None:
        return self._handler.root if self._handler else None

    async def start(self, root: Path | str, loop: asyncio.AbstractEventLoop | None = None) -> bool:
        """Start watching `root` recursively; a running watcher is stopped first."""
        await self.stop()
        normalized = os.path.normpath(str(root))
        if not os.path.isdir(normalized):
            logger.warning("Watcher not started, not a directory: %s", normalized)
            return False

        loop = loop or asyncio.get_running_loop()
        with self._lock:
            self._handler = LibraryWatchHandler(normalized, self._consistency, loop)
            self._observer = self._observer_factory()
            try:
                self._observer.schedule(self._handler, normalized, recursive=True)
                self._observer.start()
            except OSError as exc:
                logger.warning("Failed to watch %s: %s", normalized, exc)
                self._observer = None
                self._handler = None
                return False
            self._running = True
        logger.info("Library watcher started for: %s", normalized)
        return True

    async def retarget(self, root: LibraryRoot) -> None:
        """Library root listener: follow the newly configured root."""
        if self.watched_path == os.path.normpath(str(root.canonical)):
            return
        await self.start(root.canonical)

    async def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            observer = self._observer
            self._observer = None
            self._handler = None
            self._running = False
        if observer is not None:
            try:
                observer.stop()
                observer.join(timeout=2)
            except RuntimeError as exc:
                logger.debug("Watcher stop error: %s", exc)
        logger.info("Library watcher stopped")
