"""Shared utilities for the RAW library manager."""
from .errors import sanitize_error_message
from .log import get_logger, library_path_context, library_path_var, log_structured, log_success
from .result import Result
from .rwlock import AsyncRWLock
from .time import now, timer, to_unix_seconds
from .types import RAW_EXTENSIONS, ErrorCode, FileKind, classify_file, is_supported_raw

__all__ = [
    "Result",
    "get_logger",
    "log_success",
    "now",
    "timer",
    "to_unix_seconds",
    "FileKind",
    "ErrorCode",
    "RAW_EXTENSIONS",
    "classify_file",
    "is_supported_raw",
    "AsyncRWLock",
    "log_structured",
    "library_path_var",
    "library_path_context",
    "sanitize_error_message",
]
