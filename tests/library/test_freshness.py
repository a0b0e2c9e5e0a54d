import os

import pytest
import pytest_asyncio

from rawmgr_backend.adapters.db.schema import migrate_schema
from rawmgr_backend.adapters.db.sqlite import Sqlite
from rawmgr_backend.features.library.freshness import FreshnessCoordinator, FreshnessState, classify
from rawmgr_backend.features.library.models import ORIENTATION_NONE_FOUND, FileRecord
from rawmgr_backend.features.library.root import LibraryContext
from rawmgr_backend.features.library.store import FileRecordStore
from rawmgr_backend.features.metadata import ExtractedMeta, MetadataService
from rawmgr_shared import ErrorCode, Result


class _FakeExtractor:
    def __init__(self):
        self.calls = []
        self.meta = ExtractedMeta(camera_rating=3, gps_lat=1.5, gps_lon=-2.5, taken_at="2024-01-01 00:00:00", orientation=6)

    def __call__(self, path):
        self.calls.append(path.name)
        return Result.Ok(self.meta)


@pytest_asyncio.fixture
async def env(tmp_path):
    db = Sqlite(str(tmp_path / "fresh.db"))
    assert (await migrate_schema(db)).ok
    root = tmp_path / "lib"
    root.mkdir()
    library = LibraryContext()
    assert (await library.configure(str(root), persist=False)).ok
    store = FileRecordStore(db)
    extractor = _FakeExtractor()
    coordinator = FreshnessCoordinator(library, store, MetadataService(extractor=extractor))
    try:
        yield {"root": root, "store": store, "extractor": extractor, "coordinator": coordinator}
    finally:
        await db.aclose()


def _touch(path, data=b"raw-bytes", mtime=1_700_000_000):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    os.utime(path, (mtime, mtime))
    return path


def test_classify_states():
    record = FileRecord(path="a.arw", file_size=10, last_modified=20, orientation=1)
    assert classify(None, 10, 20) is FreshnessState.NO_RECORD
    assert classify(record, 10, 20) is FreshnessState.FRESH
    assert classify(record, 11, 20) is FreshnessState.STALE_SIZE_OR_TIME
    assert classify(record, 10, 21) is FreshnessState.STALE_SIZE_OR_TIME
    no_orientation = FileRecord(path="a.arw", file_size=10, last_modified=20)
    assert classify(no_orientation, 10, 20) is FreshnessState.STALE_MISSING_ATTRIBUTE


def test_sentinel_orientation_counts_as_present():
    record = FileRecord(path="a.arw", file_size=1, last_modified=1, orientation=ORIENTATION_NONE_FOUND)
    assert classify(record, 1, 1) is FreshnessState.FRESH
    assert record.to_view()["orientation"] is None


@pytest.mark.asyncio
async def test_first_read_extracts_then_serves_from_cache(env):
    _touch(env["root"] / "2024" / "IMG_1.ARW")
    coordinator = env["coordinator"]

    first = await coordinator.get_file_metadata("2024/IMG_1.ARW")
    assert first.ok, first.error
    assert first.meta["state"] == FreshnessState.NO_RECORD.value
    assert first.data.camera_rating == 3
    assert first.data.orientation == 6
    assert first.data.file_size == len(b"raw-bytes")
    assert first.data.last_modified == 1_700_000_000

    second = await coordinator.get_file_metadata("2024/IMG_1.ARW")
    assert second.ok
    assert second.meta["state"] == FreshnessState.FRESH.value
    assert second.data == first.data
    assert env["extractor"].calls == ["IMG_1.ARW"]


@pytest.mark.asyncio
async def test_changed_file_is_reextracted_keeping_user_fields(env):
    path = _touch(env["root"] / "IMG_2.NEF")
    coordinator = env["coordinator"]
    assert (await coordinator.get_file_metadata("IMG_2.NEF")).ok
    assert (await coordinator.set_rating("IMG_2.NEF", 5)).ok
    assert (await coordinator.set_tags("IMG_2.NEF", ["keeper"])).ok

    _touch(path, data=b"edited-raw-bytes", mtime=1_700_000_500)
    env["extractor"].meta = ExtractedMeta(camera_rating=1, orientation=None)
    res = await coordinator.get_file_metadata("IMG_2.NEF")
    assert res.ok
    assert res.meta["state"] == FreshnessState.STALE_SIZE_OR_TIME.value
    assert res.data.camera_rating == 1
    assert res.data.user_rating == 5
    assert res.data.tags == ["keeper"]
    assert res.data.orientation == ORIENTATION_NONE_FOUND
    assert res.data.last_modified == 1_700_000_500


@pytest.mark.asyncio
async def test_missing_orientation_forces_reextraction(env):
    _touch(env["root"] / "IMG_3.DNG")
    coordinator = env["coordinator"]
    assert (await coordinator.get_file_metadata("IMG_3.DNG")).ok
    await env["store"].db.aexecute("UPDATE files SET orientation = NULL WHERE path = ?", ("IMG_3.DNG",))

    res = await coordinator.get_file_metadata("IMG_3.DNG")
    assert res.meta["state"] == FreshnessState.STALE_MISSING_ATTRIBUTE.value
    assert len(env["extractor"].calls) == 2


@pytest.mark.asyncio
async def test_get_file_metadata_errors(env):
    coordinator = env["coordinator"]
    (env["root"] / "folder.arw").mkdir()

    missing = await coordinator.get_file_metadata("nope.arw")
    assert missing.code == ErrorCode.NOT_FOUND.value
    not_file = await coordinator.get_file_metadata("folder.arw")
    assert not_file.code == ErrorCode.INVALID_INPUT.value
    escape = await coordinator.get_file_metadata("../etc/passwd")
    assert escape.code == ErrorCode.INVALID_INPUT.value


@pytest.mark.asyncio
async def test_unconfigured_library_is_conflict(env):
    coordinator = FreshnessCoordinator(LibraryContext(), env["store"], MetadataService(extractor=env["extractor"]))
    res = await coordinator.get_file_metadata("a.arw")
    assert res.code == ErrorCode.CONFLICT.value
    res = await coordinator.browse("")
    assert res.code == ErrorCode.CONFLICT.value


@pytest.mark.asyncio
async def test_browse_orders_and_flags_entries(env):
    root = env["root"]
    (root / "zeta").mkdir()
    (root / "Alpha").mkdir()
    _touch(root / "b.ARW")
    _touch(root / "A.nef")
    _touch(root / "notes.txt")
    coordinator = env["coordinator"]
    assert (await coordinator.get_file_metadata("b.ARW")).ok

    res = await coordinator.browse("")
    assert res.ok, res.error
    views = [entry.to_view() for entry in res.data]
    assert [(v["kind"], v["name"]) for v in views] == [
        ("dir", "Alpha"),
        ("dir", "zeta"),
        ("file", "A.nef"),
        ("file", "b.ARW"),
    ]
    by_name = {v["name"]: v for v in views}
    assert by_name["A.nef"]["needs_scan"] is True
    assert by_name["b.ARW"]["needs_scan"] is False
    assert by_name["b.ARW"]["camera_rating"] == 3
    assert env["extractor"].calls == ["b.ARW"]


@pytest.mark.asyncio
async def test_browse_subfolder_paths(env):
    _touch(env["root"] / "trip" / "day1" / "x.cr3")
    res = await env["coordinator"].browse("trip")
    assert [e.path for e in res.data] == ["trip/day1"]
    res = await env["coordinator"].browse("/trip/day1/")
    assert [e.path for e in res.data] == ["trip/day1/x.cr3"]


@pytest.mark.asyncio
async def test_browse_on_file_is_invalid(env):
    _touch(env["root"] / "x.cr3")
    res = await env["coordinator"].browse("x.cr3")
    assert res.ok is False
    assert res.code == ErrorCode.INVALID_INPUT.value


@pytest.mark.asyncio
async def test_set_rating_validation(env):
    _touch(env["root"] / "r.arw")
    coordinator = env["coordinator"]
    for bad in (6, -1, "x", True, 2.5):
        res = await coordinator.set_rating("r.arw", bad)
        assert res.code == ErrorCode.INVALID_INPUT.value, bad

    cleared = await coordinator.set_rating("r.arw", None)
    assert cleared.ok
    assert cleared.data.user_rating is None


@pytest.mark.asyncio
async def test_rating_before_first_read_keeps_record_stale(env):
    _touch(env["root"] / "early.arw")
    coordinator = env["coordinator"]
    rated = await coordinator.set_rating("early.arw", 2)
    assert rated.ok
    assert rated.data.orientation is None

    res = await coordinator.get_file_metadata("early.arw")
    assert res.meta["state"] == FreshnessState.STALE_MISSING_ATTRIBUTE.value
    assert res.data.user_rating == 2
    assert res.data.camera_rating == 3


@pytest.mark.asyncio
async def test_edit_after_file_change_resyncs_first(env):
    path = _touch(env["root"] / "c.arw")
    coordinator = env["coordinator"]
    assert (await coordinator.get_file_metadata("c.arw")).ok
    _touch(path, data=b"changed", mtime=1_700_000_900)
    env["extractor"].meta = ExtractedMeta(camera_rating=4, orientation=3)

    res = await coordinator.set_tags("c.arw", ["x"])
    assert res.ok
    assert res.data.camera_rating == 4
    assert res.data.orientation == 3
    assert res.data.last_modified == 1_700_000_900


@pytest.mark.asyncio
async def test_set_tags_normalizes(env):
    _touch(env["root"] / "t.arw")
    coordinator = env["coordinator"]
    res = await coordinator.set_tags("t.arw", ["  Sky ", "sky", "", "Sea", "SEA", "land"])
    assert res.ok
    assert res.data.tags == ["Sky", "Sea", "land"]

    bad = await coordinator.set_tags("t.arw", "Sky")
    assert bad.code == ErrorCode.INVALID_INPUT.value

    tags = await coordinator.list_tags()
    assert tags.data == ["land", "Sea", "Sky"]
