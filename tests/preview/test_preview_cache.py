import io
import os

import pytest
from PIL import Image

from rawmgr_backend.features.preview.cache import (
    PreviewKind,
    ensure_preview,
    ensure_thumbnail,
    preview_cache_path,
)
from rawmgr_backend.features.preview.scanner import find_largest_jpeg

SMALL = b"\xff\xd8" + b"s" * 10 + b"\xff\xd9"
LARGE = b"\xff\xd8" + b"L" * 100 + b"\xff\xd9"


def _jpeg_bytes(size=(1200, 800)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (200, 40, 40)).save(buf, format="JPEG", quality=80)
    return buf.getvalue()


def test_scanner_picks_longest_run():
    data = b"hdr" + SMALL + b"pad" + LARGE + b"tail"
    start, end = find_largest_jpeg(data)
    assert data[start:end] == LARGE


def test_scanner_tie_keeps_first():
    first = b"\xff\xd8aa\xff\xd9"
    second = b"\xff\xd8bb\xff\xd9"
    data = first + second
    assert find_largest_jpeg(data) == (0, len(first))


def test_scanner_drops_unterminated_run():
    data = SMALL + b"\xff\xd8" + b"x" * 500
    assert find_largest_jpeg(data) == (0, len(SMALL))


def test_scanner_first_eoi_closes_run():
    data = b"\xff\xd8a\xff\xd8b\xff\xd9c\xff\xd9"
    assert find_largest_jpeg(data) == (0, 8)


def test_scanner_without_markers():
    assert find_largest_jpeg(b"") is None
    assert find_largest_jpeg(b"\xff\xd9\xff\xd8") is None


def test_cache_path_is_deterministic(tmp_path):
    a = preview_cache_path(tmp_path, "2024/trip/IMG_1.ARW")
    b = preview_cache_path(tmp_path, "2024/trip/IMG_1.ARW", "full")
    c = preview_cache_path(tmp_path, "2024/trip/IMG_2.ARW")
    thumb = preview_cache_path(tmp_path, "2024/trip/IMG_1.ARW", PreviewKind.THUMB)
    assert a == b
    assert a != c
    assert a.suffix == ".jpg" and len(a.stem) == 64
    assert thumb.name == f"{a.stem}-thumb.jpg"


def test_ensure_preview_writes_largest_range(tmp_path):
    source = tmp_path / "IMG.ARW"
    source.write_bytes(b"RAW" + SMALL + LARGE + b"END")
    dest = tmp_path / "cache" / "p.jpg"

    assert ensure_preview(source, dest) is True
    assert dest.read_bytes() == LARGE
    assert not [p for p in dest.parent.iterdir() if p.name.endswith(".tmp")]


def test_ensure_preview_without_jpeg_writes_nothing(tmp_path):
    source = tmp_path / "IMG.ARW"
    source.write_bytes(b"no markers at all")
    dest = tmp_path / "p.jpg"
    assert ensure_preview(source, dest) is False
    assert not dest.exists()


def test_ensure_preview_missing_source_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        ensure_preview(tmp_path / "gone.arw", tmp_path / "p.jpg")


def test_ensure_preview_reuses_fresh_entry_and_refreshes_stale(tmp_path):
    source = tmp_path / "IMG.ARW"
    source.write_bytes(LARGE)
    dest = tmp_path / "p.jpg"
    assert ensure_preview(source, dest)

    dest.write_bytes(b"cached")
    os.utime(source, (1_000_000, 1_000_000))
    os.utime(dest, (2_000_000, 2_000_000))
    assert ensure_preview(source, dest)
    assert dest.read_bytes() == b"cached"

    os.utime(source, (3_000_000, 3_000_000))
    assert ensure_preview(source, dest)
    assert dest.read_bytes() == LARGE


def test_thumbnail_is_downscaled(tmp_path):
    source = tmp_path / "IMG.NEF"
    source.write_bytes(b"RAWHEADER" + SMALL + _jpeg_bytes())
    full = tmp_path / "full.jpg"
    thumb = tmp_path / "thumb.jpg"

    assert ensure_thumbnail(source, full, thumb, max_edge=256) is True
    with Image.open(thumb) as img:
        assert max(img.size) <= 256
    with Image.open(full) as img:
        assert img.size == (1200, 800)


def test_thumbnail_falls_back_to_full_preview(tmp_path):
    source = tmp_path / "IMG.NEF"
    source.write_bytes(LARGE)
    full = tmp_path / "full.jpg"
    thumb = tmp_path / "thumb.jpg"

    assert ensure_thumbnail(source, full, thumb, max_edge=128) is True
    assert thumb.read_bytes() == LARGE


def test_thumbnail_without_jpeg(tmp_path):
    source = tmp_path / "IMG.NEF"
    source.write_bytes(b"nothing")
    assert ensure_thumbnail(source, tmp_path / "f.jpg", tmp_path / "t.jpg") is False
    assert not (tmp_path / "t.jpg").exists()


def test_preview_is_dropped_when_source_loses_its_jpeg(tmp_path):
    source = tmp_path / "IMG.ARW"
    source.write_bytes(b"RAW" + LARGE)
    full = tmp_path / "full.jpg"
    thumb = tmp_path / "thumb.jpg"
    assert ensure_thumbnail(source, full, thumb, max_edge=64)
    assert full.exists() and thumb.exists()

    source.write_bytes(b"rewritten without a preview")
    os.utime(source, (4_000_000_000, 4_000_000_000))
    assert ensure_preview(source, full) is False
    assert not full.exists()
    assert ensure_thumbnail(source, full, thumb, max_edge=64) is False
    assert not thumb.exists()
