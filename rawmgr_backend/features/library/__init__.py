"""Library feature: root context, metadata cache, freshness and path consistency."""

from .consistency import PathConsistency
from .filesystem import LibraryFilesystem
from .freshness import FreshnessCoordinator, FreshnessState, classify
from .models import ORIENTATION_NONE_FOUND, BrowseEntry, FileRecord, normalize_tags
from .root import LibraryContext, LibraryRoot, ResolvedPath
from .store import FileRecordStore
from .watcher import LibraryWatcher, LibraryWatchHandler

__all__ = [
    "BrowseEntry",
    "FileRecord",
    "FileRecordStore",
    "FreshnessCoordinator",
    "FreshnessState",
    "LibraryContext",
    "LibraryFilesystem",
    "LibraryRoot",
    "LibraryWatchHandler",
    "LibraryWatcher",
    "ORIENTATION_NONE_FOUND",
    "PathConsistency",
    "ResolvedPath",
    "classify",
    "normalize_tags",
]
