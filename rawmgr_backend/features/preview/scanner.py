"""
Embedded JPEG locator.

RAW containers usually carry one or more JPEG renditions (thumbnail, medium,
full size). The largest complete SOI..EOI run is taken as the preview.
"""
from __future__ import annotations

from enum import Enum

SOI = b"\xff\xd8"
EOI = b"\xff\xd9"


class ScanState(Enum):
    OUTSIDE_IMAGE = "outside"
    INSIDE_IMAGE = "inside"


def find_largest_jpeg(data: bytes) -> tuple[int, int] | None:
    """
    Return the (start, end) byte range of the longest SOI..EOI run, end exclusive.

    Outside an image, the next SOI opens a run. Inside, the first EOI closes it;
    SOI markers seen inside are ignored. A run without a closing EOI is dropped.
    Ties keep the earlier run.
    """
    best: tuple[int, int] | None = None
    state = ScanState.OUTSIDE_IMAGE
    pos = 0
    start = 0
    while True:
        if state is ScanState.OUTSIDE_IMAGE:
            idx = data.find(SOI, pos)
            if idx < 0:
                break
            start = idx
            pos = idx + len(SOI)
            state = ScanState.INSIDE_IMAGE
        else:
            idx = data.find(EOI, pos)
            if idx < 0:
                break
            end = idx + len(EOI)
            if best is None or (end - start) > (best[1] - best[0]):
                best = (start, end)
            pos = end
            state = ScanState.OUTSIDE_IMAGE
    return best
