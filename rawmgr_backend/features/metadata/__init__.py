"""Metadata extraction feature."""

from .extractor import ExtractedMeta, read_metadata
from .rating import RATING_PROBES, RatingSources, resolve_rating
from .service import MetadataService
from .xmp import find_xmp_packet, parse_xmp_rating

__all__ = [
    "ExtractedMeta",
    "MetadataService",
    "RATING_PROBES",
    "RatingSources",
    "find_xmp_packet",
    "parse_xmp_rating",
    "read_metadata",
    "resolve_rating",
]
