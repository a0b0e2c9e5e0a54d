"""
XMP packet location and star-rating parsing.

Only `xmp:Rating` is read; the packet is treated as text, not parsed as XML,
because packets embedded in RAW containers are frequently padded or truncated.
"""
from __future__ import annotations

import re
from pathlib import Path

XMP_OPEN = b"<x:xmpmeta"
XMP_CLOSE = b"</x:xmpmeta>"

_ATTR_RATING_RE = re.compile(r"""xmp:Rating\s*=\s*(["'])\s*(-?\d+)\s*\1""")
_ELEMENT_RATING_RE = re.compile(r"<xmp:Rating>\s*(-?\d+)\s*</xmp:Rating>")


def find_xmp_packet(data: bytes) -> str | None:
    """Return the first `<x:xmpmeta ... </x:xmpmeta>` packet decoded as lossy UTF-8."""
    if not data:
        return None
    start = data.find(XMP_OPEN)
    end = data.find(XMP_CLOSE)
    if start < 0 or end < 0 or end <= start:
        return None
    return data[start:end + len(XMP_CLOSE)].decode("utf-8", errors="replace")


def parse_xmp_rating(xmp: str | None) -> int | None:
    """
    Read `xmp:Rating` from packet text, clamped to [0, 5].

    The attribute form (`xmp:Rating="4"`, single or double quotes) is checked
    before the element form (`<xmp:Rating>4</xmp:Rating>`).
    """
    if not xmp:
        return None
    match = _ATTR_RATING_RE.search(xmp)
    if match:
        return max(0, min(5, int(match.group(2))))
    match = _ELEMENT_RATING_RE.search(xmp)
    if match:
        return max(0, min(5, int(match.group(1))))
    return None


def rating_from_bytes(data: bytes) -> int | None:
    return parse_xmp_rating(find_xmp_packet(data))


def sidecar_candidates(path: Path) -> list[Path]:
    """`IMG_1.ARW` -> [`IMG_1.xmp`, `IMG_1.XMP`]."""
    path = Path(path)
    lower = path.with_suffix(".xmp")
    upper = path.with_suffix(".XMP")
    return [lower] if lower == upper else [lower, upper]


def read_sidecar_rating(path: Path) -> int | None:
    """Rating from a same-basename sidecar next to `path`, if one exists and is readable."""
    for candidate in sidecar_candidates(path):
        try:
            if not candidate.is_file():
                continue
            data = candidate.read_bytes()
        except OSError:
            continue
        rating = rating_from_bytes(data)
        if rating is not None:
            return rating
    return None
