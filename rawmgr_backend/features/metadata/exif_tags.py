"""
Thin read-only view over the tags `exifread` returns for a RAW container.

exifread keys tags by "<IFD> <Name>" (e.g. "Image Orientation", "GPS GPSLatitude").
Vendor tags such as Rating/RatingPercent are matched by tag number instead,
since their names vary between exifread releases.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, BinaryIO

import exifread

from ...shared import get_logger

logger = get_logger(__name__)

TAG_ORIENTATION = 0x0112
TAG_RATING = 0x4746
TAG_RATING_PERCENT = 0x4749

_EXIF_DATE_SEPARATOR = ":"


def read_exif_tags(fh: BinaryIO) -> dict[str, Any]:
    """
    Parse structured tags from an open binary file.

    Unrecognized containers and parser failures yield an empty mapping.
    """
    try:
        tags = exifread.process_file(fh, details=False)
    except Exception as exc:
        logger.debug("exifread failed: %s", exc)
        return {}
    return dict(tags or {})


def ratio_to_float(value: Any) -> float | None:
    """Convert an exifread Ratio (or plain number) to float; zero denominators count as 0."""
    num = getattr(value, "num", None)
    den = getattr(value, "den", None)
    if num is not None and den is not None:
        try:
            if int(den) == 0:
                return 0.0
            return float(num) / float(den)
        except (TypeError, ValueError, ZeroDivisionError):
            return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def normalize_exif_datetime(raw: str | None) -> str | None:
    """'2023:05:01 10:20:30' -> '2023-05-01 10:20:30'. Other shapes pass through trimmed."""
    if not raw:
        return None
    text = str(raw).strip().strip("\x00").strip()
    if not text:
        return None
    date_part, sep, time_part = text.partition(" ")
    if date_part.count(_EXIF_DATE_SEPARATOR) == 2:
        date_part = date_part.replace(_EXIF_DATE_SEPARATOR, "-")
    return f"{date_part}{sep}{time_part}" if sep else date_part


class ExifTags:
    def __init__(self, tags: Mapping[str, Any] | None = None):
        self._tags = dict(tags or {})

    def __bool__(self) -> bool:
        return bool(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def get(self, name: str) -> Any | None:
        return self._tags.get(name)

    def find(self, tag_id: int, ifd: str = "Image") -> Any | None:
        """Look a tag up by number within one IFD group."""
        prefix = f"{ifd} "
        for key, tag in self._tags.items():
            if not str(key).startswith(prefix):
                continue
            if getattr(tag, "tag", None) == tag_id:
                return tag
        return None

    @staticmethod
    def _values(tag: Any) -> list[Any]:
        if tag is None:
            return []
        values = getattr(tag, "values", None)
        if values is None:
            return []
        if isinstance(values, (list, tuple)):
            return list(values)
        return [values]

    def first_int(self, tag: Any) -> int | None:
        """First value of an integer-typed tag; non-integer types give None."""
        for value in self._values(tag)[:1]:
            if isinstance(value, bool):
                return None
            if isinstance(value, int):
                return value
        return None

    def text(self, name: str) -> str | None:
        tag = self.get(name)
        if tag is None:
            return None
        values = getattr(tag, "values", None)
        if isinstance(values, str):
            out = values
        else:
            out = str(getattr(tag, "printable", "") or "")
        out = out.strip().strip("\x00").strip()
        return out or None

    def rationals(self, name: str) -> list[float] | None:
        tag = self.get(name)
        if tag is None:
            return None
        out: list[float] = []
        for value in self._values(tag):
            converted = ratio_to_float(value)
            if converted is None:
                return None
            out.append(converted)
        return out
