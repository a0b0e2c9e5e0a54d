"""
Content-addressed preview cache.

Cache files are named by the SHA-256 of the logical relative path, so the same
library file always maps to the same entry. An entry is fresh while its mtime
is not older than the source's.
"""
from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
from enum import Enum
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ...shared import get_logger
from .scanner import find_largest_jpeg

logger = get_logger(__name__)


class PreviewKind(str, Enum):
    FULL = "full"
    THUMB = "thumb"

    @classmethod
    def parse(cls, value: "str | PreviewKind | None") -> "PreviewKind":
        if isinstance(value, PreviewKind):
            return value
        text = str(value or "").strip().lower()
        return cls.THUMB if text == cls.THUMB.value else cls.FULL


def preview_cache_path(preview_dir: Path | str, rel_path: str, kind: PreviewKind | str = PreviewKind.FULL) -> Path:
    digest = hashlib.sha256(rel_path.encode("utf-8")).hexdigest()
    if PreviewKind.parse(kind) is PreviewKind.THUMB:
        return Path(preview_dir) / f"{digest}-thumb.jpg"
    return Path(preview_dir) / f"{digest}.jpg"


def _is_fresh(dest: Path, source_mtime_ns: int) -> bool:
    try:
        return dest.stat().st_mtime_ns >= source_mtime_ns
    except OSError:
        return False


def _atomic_write(dest: Path, payload: bytes | memoryview) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(dest.parent), prefix=".preview_", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        os.replace(tmp_path, dest)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def ensure_preview(source: Path | str, dest: Path | str) -> bool:
    """
    Make sure `dest` holds the largest JPEG embedded in `source`.

    Returns True on a cache hit or after writing, False when the source has no
    complete JPEG; an entry left from an earlier version of the source is then
    removed. A missing source raises FileNotFoundError.
    """
    source = Path(source)
    dest = Path(dest)
    source_mtime_ns = source.stat().st_mtime_ns
    if _is_fresh(dest, source_mtime_ns):
        return True

    data = source.read_bytes()
    found = find_largest_jpeg(data)
    if found is None or found[1] <= found[0]:
        logger.debug("No embedded JPEG in %s", source.name)
        dest.unlink(missing_ok=True)
        return False
    start, end = found
    _atomic_write(dest, memoryview(data)[start:end])
    logger.debug("Preview written for %s (%d bytes)", source.name, end - start)
    return True


def ensure_thumbnail(
    source: Path | str,
    full_dest: Path | str,
    thumb_dest: Path | str,
    max_edge: int = 512,
    quality: int = 85,
) -> bool:
    """
    Derive a downscaled JPEG from the full preview.

    If Pillow cannot decode the embedded JPEG, the full preview bytes are used
    as the thumbnail so callers still get an image.
    """
    source = Path(source)
    full_dest = Path(full_dest)
    thumb_dest = Path(thumb_dest)
    source_mtime_ns = source.stat().st_mtime_ns
    if _is_fresh(thumb_dest, source_mtime_ns):
        return True
    if not ensure_preview(source, full_dest):
        thumb_dest.unlink(missing_ok=True)
        return False

    thumb_dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(thumb_dest.parent), prefix=".thumb_", suffix=".tmp")
    os.close(fd)
    try:
        try:
            with Image.open(full_dest) as img:
                img.draft("RGB", (max_edge, max_edge))
                img.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)
                img.convert("RGB").save(tmp_path, format="JPEG", quality=quality)
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            logger.debug("Thumbnail decode failed for %s, using full preview: %s", source.name, exc)
            shutil.copyfile(full_dest, tmp_path)
        os.replace(tmp_path, thumb_dest)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise
    return True
