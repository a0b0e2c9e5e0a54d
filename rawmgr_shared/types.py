"""
Shared types, enums, and constants.
"""
import os
from enum import Enum
from typing import Final, Literal

# File type classifications
FileKind = Literal["raw", "sidecar", "unknown"]

# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes (string enum)."""

    # Client / validation
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # Server / infrastructure
    DB_ERROR = "DB_ERROR"
    TIMEOUT = "TIMEOUT"
    WORKER_ERROR = "WORKER_ERROR"
    INTERNAL = "INTERNAL"

    # Operation errors
    METADATA_FAILED = "METADATA_FAILED"

# RAW containers the library lists, extracts and previews
RAW_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {".arw", ".dng", ".cr2", ".cr3", ".nef", ".raf", ".orf", ".rw2", ".srw", ".pef"}
)

SIDECAR_EXTENSIONS: Final[frozenset[str]] = frozenset({".xmp"})

def classify_file(filename: str) -> FileKind:
    """
    Classify file by extension.

    Args:
        filename: File name or path

    Returns:
        File kind (raw, sidecar, unknown)
    """
    ext = os.path.splitext(filename)[1].lower()
    if ext in RAW_EXTENSIONS:
        return "raw"
    if ext in SIDECAR_EXTENSIONS:
        return "sidecar"
    return "unknown"

def is_supported_raw(filename: str) -> bool:
    return classify_file(filename) == "raw"
