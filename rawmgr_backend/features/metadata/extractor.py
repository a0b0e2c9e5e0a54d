"""
RAW container metadata extraction.

Reads camera rating, GPS position, capture time and orientation. Only an
unreadable file is an error; missing or corrupt metadata yields absent fields.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from ...shared import ErrorCode, Result, get_logger
from .exif_tags import TAG_ORIENTATION, TAG_RATING, TAG_RATING_PERCENT, ExifTags, normalize_exif_datetime, read_exif_tags
from .rating import RatingSources, resolve_rating
from .xmp import find_xmp_packet

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExtractedMeta:
    camera_rating: int | None = None
    gps_lat: float | None = None
    gps_lon: float | None = None
    taken_at: str | None = None
    orientation: int | None = None

    def is_empty(self) -> bool:
        return all(v is None for v in asdict(self).values())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _dms_to_degrees(values: list[float] | None) -> float | None:
    if not values or len(values) < 3:
        return None
    deg, minutes, seconds = values[0], values[1], values[2]
    return deg + (minutes / 60.0) + (seconds / 3600.0)


def extract_gps(tags: ExifTags) -> tuple[float, float] | None:
    """Signed decimal (lat, lon); all four of value/ref for both axes are required."""
    lat_ref = tags.text("GPS GPSLatitudeRef")
    lon_ref = tags.text("GPS GPSLongitudeRef")
    if lat_ref is None or lon_ref is None:
        return None
    lat = _dms_to_degrees(tags.rationals("GPS GPSLatitude"))
    lon = _dms_to_degrees(tags.rationals("GPS GPSLongitude"))
    if lat is None or lon is None:
        return None
    if lat_ref.strip().upper().startswith("S"):
        lat = -lat
    if lon_ref.strip().upper().startswith("W"):
        lon = -lon
    return lat, lon


def extract_taken_at(tags: ExifTags) -> str | None:
    raw = tags.text("EXIF DateTimeOriginal") or tags.text("Image DateTime")
    return normalize_exif_datetime(raw)


def extract_orientation(tags: ExifTags) -> int | None:
    tag = tags.find(TAG_ORIENTATION, "Image") or tags.get("Image Orientation")
    value = tags.first_int(tag)
    if value is None or not 1 <= value <= 8:
        return None
    return value


def _open_error(path: Path, exc: OSError) -> Result[ExtractedMeta]:
    if isinstance(exc, FileNotFoundError):
        return Result.Err(ErrorCode.NOT_FOUND, f"File not found: {path.name}")
    if isinstance(exc, PermissionError):
        return Result.Err(ErrorCode.PERMISSION_DENIED, f"Permission denied: {path.name}")
    return Result.Err(ErrorCode.METADATA_FAILED, f"Cannot open {path.name}: {exc}")


def read_metadata(path: Path | str) -> Result[ExtractedMeta]:
    """
    Extract metadata from a RAW container (blocking; run on the worker pool).

    Returns:
        Ok(ExtractedMeta) whenever the file could be opened, Err otherwise.
    """
    path = Path(path)
    try:
        fh = path.open("rb")
    except OSError as exc:
        return _open_error(path, exc)

    embedded_xmp: str | None = None
    with fh:
        tags = ExifTags(read_exif_tags(fh))
        exif_rating = tags.first_int(tags.find(TAG_RATING, "Image"))
        exif_percent = tags.first_int(tags.find(TAG_RATING_PERCENT, "Image"))
        if exif_rating is None and exif_percent is None:
            try:
                fh.seek(0)
                embedded_xmp = find_xmp_packet(fh.read())
            except OSError as exc:
                logger.debug("Embedded XMP read failed for %s: %s", path.name, exc)

    gps = extract_gps(tags)
    sources = RatingSources(
        exif_rating=exif_rating,
        exif_rating_percent=exif_percent,
        embedded_xmp=embedded_xmp,
        sidecar_for=path,
    )
    meta = ExtractedMeta(
        camera_rating=resolve_rating(sources),
        gps_lat=gps[0] if gps else None,
        gps_lon=gps[1] if gps else None,
        taken_at=extract_taken_at(tags),
        orientation=extract_orientation(tags),
    )
    if not tags:
        logger.debug("No structured tags in %s", path.name)
    return Result.Ok(meta)
