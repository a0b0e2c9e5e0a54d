import asyncio
import os
from types import SimpleNamespace

import pytest

from rawmgr_backend.features.library import watcher as w
from rawmgr_backend.features.library.root import LibraryRoot
from rawmgr_shared import Result


class _FakeConsistency:
    def __init__(self):
        self.calls = []

    async def forget(self, rel, is_dir):
        self.calls.append(("forget", rel, is_dir))
        return Result.Ok(1)

    async def relocate(self, src, dst, is_dir):
        self.calls.append(("relocate", src, dst, is_dir))
        return Result.Ok(1)


class _FakeObserver:
    def __init__(self):
        self.started = False
        self.stopped = False
        self.joined = False
        self.scheduled = []

    def schedule(self, handler, path, recursive=True):
        watch = {"handler": handler, "path": path, "recursive": recursive}
        self.scheduled.append(watch)
        return watch

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=0):
        _ = timeout
        self.joined = True


def _event(src, dest=None, is_dir=False):
    return SimpleNamespace(src_path=src, dest_path=dest, is_directory=is_dir)


@pytest.fixture
def root(tmp_path):
    path = tmp_path / "lib"
    path.mkdir()
    return path


@pytest.fixture
def handler_env(root, monkeypatch):
    consistency = _FakeConsistency()
    submitted = []

    def _capture(coro, _loop):
        submitted.append(coro)

    monkeypatch.setattr(w.asyncio, "run_coroutine_threadsafe", _capture)
    handler = w.LibraryWatchHandler(root, consistency, loop=object())
    return handler, consistency, submitted


async def _drain(submitted):
    for coro in submitted:
        await coro


@pytest.mark.asyncio
async def test_deleted_raw_file_is_forgotten(handler_env, root):
    handler, consistency, submitted = handler_env
    handler.on_deleted(_event(str(root / "2024" / "IMG_1.ARW")))
    handler.on_deleted(_event(str(root / "2024" / "notes.txt")))
    await _drain(submitted)
    assert consistency.calls == [("forget", "2024/IMG_1.ARW", False)]


@pytest.mark.asyncio
async def test_deleted_folder_is_forgotten_by_prefix(handler_env, root):
    handler, consistency, submitted = handler_env
    handler.on_deleted(_event(str(root / "trip"), is_dir=True))
    await _drain(submitted)
    assert consistency.calls == [("forget", "trip", True)]


@pytest.mark.asyncio
async def test_renames_are_relocated(handler_env, root):
    handler, consistency, submitted = handler_env
    handler.on_moved(_event(str(root / "a.nef"), str(root / "b" / "a.nef")))
    handler.on_moved(_event(str(root / "old"), str(root / "new"), is_dir=True))
    await _drain(submitted)
    assert consistency.calls == [
        ("relocate", "a.nef", "b/a.nef", False),
        ("relocate", "old", "new", True),
    ]


@pytest.mark.asyncio
async def test_move_out_of_library_or_to_other_type_forgets(handler_env, root, tmp_path):
    handler, consistency, submitted = handler_env
    handler.on_moved(_event(str(root / "x.cr2"), str(tmp_path / "trash" / "x.cr2")))
    handler.on_moved(_event(str(root / "y.cr2"), str(root / "y.bak")))
    await _drain(submitted)
    assert consistency.calls == [
        ("forget", "x.cr2", False),
        ("forget", "y.cr2", False),
    ]


@pytest.mark.asyncio
async def test_ignored_events(handler_env, root, tmp_path):
    handler, consistency, submitted = handler_env
    # Upload temp file renamed into place: new files are picked up lazily
    handler.on_moved(_event(str(root / ".upload_abc.tmp"), str(root / "IMG.ARW")))
    handler.on_deleted(_event(str(tmp_path / "elsewhere.arw")))
    handler.on_deleted(_event(str(root)))
    handler.on_deleted(_event(str(root / ".git" / "x.arw")))
    await _drain(submitted)
    assert consistency.calls == []


@pytest.mark.asyncio
async def test_watcher_start_stop_and_retarget(root, tmp_path):
    observers = []

    def _factory():
        observer = _FakeObserver()
        observers.append(observer)
        return observer

    watcher = w.LibraryWatcher(_FakeConsistency(), observer_factory=_factory)
    assert await watcher.start(root)
    assert watcher.is_running
    assert observers[0].started
    assert observers[0].scheduled[0]["path"] == os.path.normpath(str(root))
    assert observers[0].scheduled[0]["recursive"] is True

    other = tmp_path / "other"
    other.mkdir()
    await watcher.retarget(LibraryRoot(raw=str(other), canonical=other))
    assert observers[0].stopped and observers[0].joined
    assert watcher.watched_path == os.path.normpath(str(other))

    await watcher.retarget(LibraryRoot(raw=str(other), canonical=other))
    assert len(observers) == 2

    await watcher.stop()
    assert not watcher.is_running
    assert observers[1].stopped


@pytest.mark.asyncio
async def test_watcher_does_not_start_on_missing_dir(tmp_path):
    watcher = w.LibraryWatcher(_FakeConsistency(), observer_factory=_FakeObserver)
    assert await watcher.start(tmp_path / "missing") is False
    assert not watcher.is_running


@pytest.mark.asyncio
async def test_handler_schedules_on_running_loop(root):
    consistency = _FakeConsistency()
    loop = asyncio.get_running_loop()
    handler = w.LibraryWatchHandler(root, consistency, loop)
    await asyncio.to_thread(handler.on_deleted, _event(str(root / "z.dng")))
    for _ in range(20):
        if consistency.calls:
            break
        await asyncio.sleep(0.01)
    assert consistency.calls == [("forget", "z.dng", False)]


@pytest.mark.asyncio
async def test_trailing_space_folder_keeps_its_name(handler_env, root):
    handler, consistency, submitted = handler_env
    handler.on_deleted(_event(str(root / "trip "), is_dir=True))
    await _drain(submitted)
    assert consistency.calls == [("forget", "trip ", True)]
