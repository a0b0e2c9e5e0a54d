from pathlib import Path

import pytest

from rawmgr_backend.features.library.root import LibraryContext
from rawmgr_backend.features.preview.service import PreviewService
from rawmgr_shared import ErrorCode

JPEG = b"\xff\xd8" + b"j" * 64 + b"\xff\xd9"


@pytest.mark.asyncio
async def test_ensure_and_stream_preview(services):
    library = services["library_path"]
    (library / "shoot").mkdir()
    (library / "shoot" / "IMG_1.ARW").write_bytes(b"raw" + JPEG)
    preview = services["preview"]

    res = await preview.ensure("shoot/IMG_1.ARW")
    assert res.ok, res.error
    assert res.data.read_bytes() == JPEG

    chunks = [chunk async for chunk in preview.stream(res.data, chunk_size=16)]
    assert b"".join(chunks) == JPEG
    assert len(chunks) == 5


@pytest.mark.asyncio
async def test_missing_embedded_jpeg_is_not_found(services):
    (services["library_path"] / "flat.dng").write_bytes(b"no preview inside")
    res = await services["preview"].ensure("flat.dng")
    assert res.ok is False
    assert res.code == ErrorCode.NOT_FOUND.value
    assert res.error == "No preview available"


@pytest.mark.asyncio
async def test_unsupported_and_escaping_paths(services):
    (services["library_path"] / "notes.txt").write_text("hi")
    res = await services["preview"].ensure("notes.txt")
    assert res.code == ErrorCode.INVALID_INPUT.value

    res = await services["preview"].ensure("../outside.arw")
    assert res.code == ErrorCode.INVALID_INPUT.value

    res = await services["preview"].ensure("nope.arw")
    assert res.code == ErrorCode.NOT_FOUND.value


@pytest.mark.asyncio
async def test_preview_requires_library_root(tmp_path):
    service = PreviewService(LibraryContext(), tmp_path / "previews")
    res = await service.ensure("a.arw")
    assert res.ok is False
    assert res.code == ErrorCode.CONFLICT.value


@pytest.mark.asyncio
async def test_abandoned_stream_leaves_no_open_handle(services, monkeypatch):
    (services["library_path"] / "IMG_2.ARW").write_bytes(b"raw" + JPEG)
    res = await services["preview"].ensure("IMG_2.ARW")
    assert res.ok, res.error

    handles = []
    real_open = Path.open

    def _tracking_open(self, *args, **kwargs):
        handle = real_open(self, *args, **kwargs)
        handles.append(handle)
        return handle

    monkeypatch.setattr(Path, "open", _tracking_open)
    stream = services["preview"].stream(res.data, chunk_size=16)
    first = await stream.__anext__()
    assert first == JPEG[:16]

    assert handles
    assert all(handle.closed for handle in handles)
    await stream.aclose()
