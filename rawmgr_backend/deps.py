"""
Dependency injection - builds services.
Simple, debug-friendly DI without framework magic.
"""

from pathlib import Path

from .adapters.db.schema import migrate_schema
from .adapters.db.sqlite import Sqlite
from .config import (
    DATA_DIR_PATH,
    DB_TIMEOUT,
    INDEX_DB,
    LIBRARY_ROOT_ENV,
    THUMB_MAX_EDGE,
    WATCHER_ENABLED,
    initialize_directories,
)
from .features.library import (
    FileRecordStore,
    FreshnessCoordinator,
    LibraryContext,
    LibraryFilesystem,
    LibraryWatcher,
    PathConsistency,
)
from .features.metadata import MetadataService
from .features.preview import PreviewService
from .settings import AppSettings
from .shared import ErrorCode, Result, get_logger, log_success

logger = get_logger(__name__)


def _resolve_paths(db_path: str | None, preview_dir: str | Path | None) -> tuple[Path, str, Path]:
    if db_path is None:
        data_dir = DATA_DIR_PATH
        db_path = INDEX_DB
    else:
        data_dir = Path(db_path).parent
    previews = Path(preview_dir) if preview_dir is not None else data_dir / "previews"
    return data_dir, str(db_path), previews


def _init_db_or_error(db_path: str) -> Result[Sqlite]:
    logger.info(f"Initializing database: {db_path}")
    try:
        return Result.Ok(Sqlite(db_path, timeout=DB_TIMEOUT))
    except Exception as exc:
        logger.error("Failed to initialize database: %s", exc)
        return Result.Err(ErrorCode.DB_ERROR, f"Failed to initialize database: {exc}")


async def _migrate_db_or_error(db: Sqlite) -> Result[bool]:
    migrate_result = await migrate_schema(db)
    if not migrate_result.ok:
        logger.error(f"Schema migration failed: {migrate_result.error}")
        return Result.Err(ErrorCode.DB_ERROR, f"Failed to initialize database: {migrate_result.error}")
    return Result.Ok(True)


async def _attach_watcher_if_enabled(services: dict, enabled: bool) -> None:
    if not enabled:
        return
    library: LibraryContext = services["library"]
    watcher = LibraryWatcher(services["consistency"])
    library.add_listener(watcher.retarget)
    services["watcher"] = watcher
    root = await library.snapshot()
    if root is not None and await watcher.start(root.canonical):
        log_success(logger, "Library watcher enabled")


async def build_services(
    db_path: str | None = None,
    preview_dir: str | Path | None = None,
    library_root: str | None = None,
    watcher: bool | None = None,
) -> Result[dict]:
    """
    Build all services (DI container).

    Args:
        db_path: Path to SQLite database (default: from config.INDEX_DB)
        preview_dir: Preview cache folder (default: `previews` beside the database)
        library_root: Library root overriding the environment and persisted value
        watcher: Force the filesystem watcher on/off (default: config.WATCHER_ENABLED)

    Returns:
        Result[dict] of service instances
    """
    logger.info("Building services...")
    data_dir, db_path, previews = _resolve_paths(db_path, preview_dir)
    try:
        initialize_directories(data_dir)
        previews.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Failed to initialize directories: %s", exc)
        return Result.Err(ErrorCode.DB_ERROR, f"Failed to initialize directories: {exc}")

    db_res = _init_db_or_error(db_path)
    if not db_res.ok:
        return Result.Err(db_res.code or ErrorCode.DB_ERROR, db_res.error or "Failed to initialize database")
    db = db_res.data

    migrate_result = await _migrate_db_or_error(db)
    if not migrate_result.ok:
        await db.aclose()
        return Result.Err(migrate_result.code, migrate_result.error or "Schema migration failed")

    settings_service = AppSettings(db)
    library = LibraryContext(settings_service)
    loaded = await library.load(library_root or LIBRARY_ROOT_ENV)
    if not loaded.ok:
        logger.warning("Library root not usable: %s", loaded.error)

    store = FileRecordStore(db)
    metadata_service = MetadataService()
    consistency = PathConsistency(store)
    services = {
        "db": db,
        "settings": settings_service,
        "library": library,
        "store": store,
        "metadata": metadata_service,
        "preview": PreviewService(library, previews, thumb_max_edge=THUMB_MAX_EDGE),
        "freshness": FreshnessCoordinator(library, store, metadata_service),
        "consistency": consistency,
        "filesystem": LibraryFilesystem(library, consistency),
    }

    await _attach_watcher_if_enabled(services, WATCHER_ENABLED if watcher is None else bool(watcher))

    log_success(logger, "All services initialized")
    return Result.Ok(services)


async def shutdown_services(services: dict) -> None:
    """Stop the watcher and close the database."""
    watcher = services.get("watcher")
    if watcher is not None:
        await watcher.stop()
    db = services.get("db")
    if db is not None:
        await db.aclose()
