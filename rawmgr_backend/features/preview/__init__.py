"""Embedded JPEG preview feature."""

from .cache import PreviewKind, ensure_preview, ensure_thumbnail, preview_cache_path
from .scanner import find_largest_jpeg
from .service import PreviewService

__all__ = [
    "PreviewKind",
    "PreviewService",
    "ensure_preview",
    "ensure_thumbnail",
    "find_largest_jpeg",
    "preview_cache_path",
]
