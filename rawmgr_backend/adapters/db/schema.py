"""
Database schema and migrations.

Migrations are an explicit, ordered list of (version, description, step).
Each step is idempotent, so re-running a partially applied migration is safe.
"""
from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from typing import List

from ...shared import ErrorCode, Result, get_logger, log_success, now

logger = get_logger(__name__)

CURRENT_SCHEMA_VERSION = 2
# Schema version history:
# 1: metadata key/value table + files table keyed by relative path
# 2: orientation column (NULL marks rows extracted before orientation existed)

SCHEMA_V1 = """
-- Metadata table for schema versioning and persisted settings
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- One row per library file, keyed by its relative path
CREATE TABLE IF NOT EXISTS files (
    path TEXT PRIMARY KEY,
    camera_rating INTEGER,
    user_rating INTEGER,
    tags TEXT NOT NULL DEFAULT '[]',  -- JSON array stored as string
    gps_lat REAL,
    gps_lon REAL,
    taken_at TEXT,  -- "YYYY-MM-DD HH:MM:SS"
    file_size INTEGER NOT NULL,  -- Freshness token (bytes)
    last_modified INTEGER NOT NULL  -- Freshness token (unix seconds)
);
"""

COLUMN_DEFINITIONS = {
    "files": [
        ("camera_rating", "camera_rating INTEGER"),
        ("user_rating", "user_rating INTEGER"),
        ("tags", "tags TEXT NOT NULL DEFAULT '[]'"),
        ("gps_lat", "gps_lat REAL"),
        ("gps_lon", "gps_lon REAL"),
        ("taken_at", "taken_at TEXT"),
        ("orientation", "orientation INTEGER"),
    ],
}

_SAFE_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _is_safe_identifier(value: str) -> bool:
    return bool(value and isinstance(value, str) and _SAFE_IDENT_RE.match(value))


async def _get_table_columns(db, table_name: str) -> Result[List[str]]:
    if not _is_safe_identifier(table_name):
        return Result.Err(ErrorCode.INVALID_INPUT, f"Invalid table name: {table_name}")
    result = await db.aquery(f"PRAGMA table_info('{table_name}')")
    if not result.ok:
        return Result.Err(ErrorCode.DB_ERROR, f"Unable to inspect {table_name}: {result.error}")
    return Result.Ok([row["name"] for row in result.data or []])


async def table_has_column(db, table_name: str, column_name: str) -> bool:
    if not _is_safe_identifier(table_name) or not _is_safe_identifier(column_name):
        logger.warning("Invalid identifier in table_has_column: %s.%s", table_name, column_name)
        return False
    columns_result = await _get_table_columns(db, table_name)
    if not columns_result.ok:
        logger.warning(
            "Unable to determine columns for %s.%s: %s",
            table_name,
            column_name,
            columns_result.error,
        )
        return False
    return column_name in (columns_result.data or [])


async def _ensure_column(db, table_name: str, column_name: str, definition: str) -> Result[bool]:
    columns_result = await _get_table_columns(db, table_name)
    if not columns_result.ok:
        return Result.Err(columns_result.code, columns_result.error or "PRAGMA failed")

    if column_name in (columns_result.data or []):
        return Result.Ok(True)

    logger.info("Adding missing column %s.%s", table_name, column_name)
    alter_result = await db.aexecute(f"ALTER TABLE {table_name} ADD COLUMN {definition}")
    if not alter_result.ok:
        return Result.Err(ErrorCode.DB_ERROR, alter_result.error or "ALTER TABLE failed")
    return Result.Ok(True)


async def ensure_columns_exist(db) -> Result[bool]:
    for table, columns in COLUMN_DEFINITIONS.items():
        if not await db.ahas_table(table):
            continue
        for column_name, definition in columns:
            result = await _ensure_column(db, table, column_name, definition)
            if not result.ok:
                logger.error("Failed to ensure column %s.%s: %s", table, column_name, result.error)
                return result
    return Result.Ok(True)


async def quarantine_legacy_files_table(db) -> Result[str | None]:
    """
    Move an incompatible `files` table out of the way.

    A `files` table without a `path` column predates path-keyed records and
    cannot be migrated in place. It is renamed to `files_legacy_<unix-ts>` and
    left untouched for manual recovery. Returns the new table name, if any.
    """
    if not await db.ahas_table("files"):
        return Result.Ok(None)
    if await table_has_column(db, "files", "path"):
        return Result.Ok(None)

    legacy_name = f"files_legacy_{int(now())}"
    suffix = 0
    while await db.ahas_table(legacy_name):
        suffix += 1
        legacy_name = f"files_legacy_{int(now())}_{suffix}"

    logger.warning("Legacy files table without path column found; renaming to %s", legacy_name)
    res = await db.aexecute(f"ALTER TABLE files RENAME TO {legacy_name}")
    if not res.ok:
        return Result.Err(ErrorCode.DB_ERROR, f"Failed to quarantine legacy files table: {res.error}")
    return Result.Ok(legacy_name)


async def _migration_v1_base_tables(db) -> Result[bool]:
    return await db.aexecutescript(SCHEMA_V1)


async def _migration_v2_orientation(db) -> Result[bool]:
    return await _ensure_column(db, "files", "orientation", "orientation INTEGER")


MIGRATIONS: list[tuple[int, str, Callable[..., Awaitable[Result[bool]]]]] = [
    (1, "base tables", _migration_v1_base_tables),
    (2, "files.orientation", _migration_v2_orientation),
]


async def migrate_schema(db) -> Result[bool]:
    """
    Bring the database to CURRENT_SCHEMA_VERSION.

    Order: quarantine a legacy `files` table, apply every migration newer than
    the stored version, self-heal optional columns, then record the version.
    Any failure is returned as an error; callers must treat it as fatal.
    """
    quarantine = await quarantine_legacy_files_table(db)
    if not quarantine.ok:
        return Result.Err(quarantine.code, quarantine.error or "Legacy table quarantine failed")

    current_version = await db.aget_schema_version()
    if quarantine.data:
        # Base tables must be recreated even if the stored version says otherwise.
        current_version = 0
    logger.info("Ensuring schema (current version %s -> target %s)", current_version, CURRENT_SCHEMA_VERSION)

    for version, description, step in MIGRATIONS:
        if version <= current_version:
            continue
        res = await step(db)
        if not res.ok:
            logger.error("Migration %s (%s) failed: %s", version, description, res.error)
            return Result.Err(ErrorCode.DB_ERROR, f"Migration {version} ({description}) failed: {res.error}")
        logger.info("Applied migration %s: %s", version, description)

    # A DB claiming the current version may still lack tables/columns.
    base = await _migration_v1_base_tables(db)
    if not base.ok:
        return Result.Err(ErrorCode.DB_ERROR, base.error or "Failed to ensure base tables")
    heal = await ensure_columns_exist(db)
    if not heal.ok:
        return heal

    version_result = await db.aset_schema_version(CURRENT_SCHEMA_VERSION)
    if not version_result.ok:
        logger.error("Failed to set schema version: %s", version_result.error)
        return Result.Err(ErrorCode.DB_ERROR, version_result.error or "Failed to set schema version")

    if current_version == CURRENT_SCHEMA_VERSION:
        logger.info("Schema already up to date (%s)", CURRENT_SCHEMA_VERSION)
    else:
        log_success(logger, f"Schema migrated from version {current_version} to {CURRENT_SCHEMA_VERSION}")
    return Result.Ok(True)
