"""Backend-facing alias for shared utilities."""

from __future__ import annotations

import rawmgr_shared as _root_shared
from rawmgr_shared.types import RAW_EXTENSIONS

Result = _root_shared.Result
ErrorCode = _root_shared.ErrorCode
AsyncRWLock = _root_shared.AsyncRWLock
get_logger = _root_shared.get_logger
log_success = _root_shared.log_success
log_structured = _root_shared.log_structured
library_path_context = _root_shared.library_path_context
classify_file = _root_shared.classify_file
is_supported_raw = _root_shared.is_supported_raw
sanitize_error_message = _root_shared.sanitize_error_message
to_unix_seconds = _root_shared.to_unix_seconds
now = _root_shared.now
timer = _root_shared.timer
FileKind = _root_shared.FileKind

__all__ = [
    "Result",
    "ErrorCode",
    "AsyncRWLock",
    "get_logger",
    "log_success",
    "log_structured",
    "library_path_context",
    "classify_file",
    "is_supported_raw",
    "sanitize_error_message",
    "to_unix_seconds",
    "now",
    "timer",
    "FileKind",
    "RAW_EXTENSIONS",
]
