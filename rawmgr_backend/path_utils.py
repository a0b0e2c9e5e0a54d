"""
Shared path normalization and safety helpers.
"""

from __future__ import annotations

import os
from pathlib import Path, PurePosixPath


def safe_rel_path(value: str | None) -> Path | None:
    """
    Validate a client supplied relative path.

    Leading/trailing slashes are trimmed. Absolute paths, drive letters, NUL
    bytes and `..` components are rejected (None). Empty input is the root.
    """
    if value is None:
        return Path("")
    raw = str(value).replace("\\", "/").strip("/")
    if raw == "":
        return Path("")
    if "\x00" in raw:
        return None
    try:
        rel = Path(raw)
    except (OSError, ValueError):
        return None
    if getattr(rel, "drive", ""):
        return None
    if rel.is_absolute():
        return None
    if any(part == ".." for part in rel.parts):
        return None
    return rel


def to_rel_key(value: Path | str) -> str:
    """Render a relative path as the `/`-separated key stored in the cache."""
    parts = [p for p in Path(value).parts if p not in ("", ".")]
    return str(PurePosixPath(*parts)) if parts else ""


def is_same_or_child(candidate: Path, parent: Path) -> bool:
    """Lexical check on already-canonical paths (no filesystem access)."""
    try:
        a = os.path.normcase(str(candidate))
        b = os.path.normcase(str(parent))
        return a == b or os.path.commonpath([a, b]) == b
    except ValueError:
        return False
