"""
Camera rating resolution.

Ratings come from several places in priority order. Each source is a pure
probe `RatingSources -> int | None`; the first probe returning a value wins.
"""
from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .xmp import parse_xmp_rating, read_sidecar_rating

MIN_RATING = 0
MAX_RATING = 5


def clamp_rating(value: int) -> int:
    return max(MIN_RATING, min(MAX_RATING, int(value)))


def percent_to_stars(percent: float) -> int:
    """RatingPercent -> stars: round(percent / 20), half away from zero, clamped."""
    scaled = float(percent) / 20.0
    stars = math.floor(scaled + 0.5) if scaled >= 0 else math.ceil(scaled - 0.5)
    return clamp_rating(stars)


@dataclass(frozen=True)
class RatingSources:
    exif_rating: int | None = None
    exif_rating_percent: int | None = None
    embedded_xmp: str | None = None
    sidecar_for: Path | None = None


RatingProbe = Callable[[RatingSources], "int | None"]


def probe_exif_rating(sources: RatingSources) -> int | None:
    if sources.exif_rating is None:
        return None
    return clamp_rating(sources.exif_rating)


def probe_exif_rating_percent(sources: RatingSources) -> int | None:
    if sources.exif_rating_percent is None:
        return None
    return percent_to_stars(sources.exif_rating_percent)


def probe_embedded_xmp(sources: RatingSources) -> int | None:
    return parse_xmp_rating(sources.embedded_xmp)


def probe_sidecar_xmp(sources: RatingSources) -> int | None:
    if sources.sidecar_for is None:
        return None
    return read_sidecar_rating(sources.sidecar_for)


RATING_PROBES: tuple[RatingProbe, ...] = (
    probe_exif_rating,
    probe_exif_rating_percent,
    probe_embedded_xmp,
    probe_sidecar_xmp,
)


def resolve_rating(sources: RatingSources, probes: Sequence[RatingProbe] = RATING_PROBES) -> int | None:
    for probe in probes:
        value = probe(sources)
        if value is not None:
            return value
    return None
