"""
Library filesystem operations.

Each operation changes the disk on the worker pool and then mirrors the change
into the metadata cache through `PathConsistency`, so records follow renames
and disappear with their files.
"""
from __future__ import annotations

import errno
import os
import shutil
import tempfile
from collections.abc import AsyncIterable, Iterable
from pathlib import Path

from ...path_utils import is_same_or_child, safe_rel_path, to_rel_key
from ...shared import ErrorCode, Result, get_logger, is_supported_raw, log_success, sanitize_error_message
from ...workers import run_blocking
from .consistency import PathConsistency
from .root import LibraryContext, ResolvedPath

logger = get_logger(__name__)


def _fs_error(outcome: Result, message: str) -> Result:
    exc = outcome.meta.get("exception")
    if isinstance(exc, FileNotFoundError):
        return Result.Err(ErrorCode.NOT_FOUND, f"{message}: not found")
    if isinstance(exc, PermissionError):
        return Result.Err(ErrorCode.PERMISSION_DENIED, f"{message}: permission denied")
    if isinstance(exc, OSError) and exc.errno == errno.EXDEV:
        return Result.Err(ErrorCode.INVALID_INPUT, "Cross-device move not supported")
    if isinstance(exc, OSError) and exc.errno == errno.ENOTEMPTY:
        return Result.Err(ErrorCode.INVALID_INPUT, "Directory not empty. Enable recursive delete.")
    return Result.Err(ErrorCode.WORKER_ERROR, sanitize_error_message(exc or outcome.error, message))


def _remove(path: Path, recursive: bool) -> bool:
    """Delete a file or folder; returns whether it was a folder."""
    if path.is_dir():
        if recursive:
            shutil.rmtree(path)
        else:
            path.rmdir()
        return True
    path.unlink()
    return False


def _rename_no_clobber(src: Path, dst: Path) -> None:
    if dst.exists() or dst.is_symlink():
        raise FileExistsError(str(dst))
    os.rename(src, dst)


def _open_temp(directory: Path) -> tuple[int, str]:
    return tempfile.mkstemp(dir=str(directory), prefix=".upload_", suffix=".tmp")


def _write_chunk(fd: int, chunk: bytes) -> None:
    view = memoryview(chunk)
    while view:
        written = os.write(fd, view)
        view = view[written:]


def _publish_upload(fd: int, tmp_path: str, target: Path) -> None:
    try:
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
        if target.exists():
            raise FileExistsError(str(target))
        os.replace(tmp_path, target)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def _discard_upload(fd: int, tmp_path: str) -> None:
    try:
        os.close(fd)
    except OSError:
        pass
    Path(tmp_path).unlink(missing_ok=True)


class LibraryFilesystem:
    def __init__(self, library: LibraryContext, consistency: PathConsistency):
        self._library = library
        self._consistency = consistency

    async def _resolve_existing(self, rel: str) -> Result[ResolvedPath]:
        resolved = await self._library.resolve(rel)
        if not resolved.ok:
            if resolved.code == ErrorCode.NOT_FOUND.value:
                return Result.Err(ErrorCode.NOT_FOUND, "Path not found")
            return resolved
        if resolved.data.is_root:
            return Result.Err(ErrorCode.INVALID_INPUT, "Invalid path")
        return resolved

    async def _resolve_folder(self, rel: str, label: str) -> Result[ResolvedPath]:
        resolved = await self._library.resolve(rel)
        if not resolved.ok:
            if resolved.code == ErrorCode.NOT_FOUND.value:
                return Result.Err(ErrorCode.NOT_FOUND, f"{label} not found")
            return resolved
        is_dir = await run_blocking(resolved.data.path.is_dir, label="is_dir")
        if not is_dir.ok:
            return _fs_error(is_dir, label)
        if not is_dir.data:
            return Result.Err(ErrorCode.INVALID_INPUT, f"{label} must be a folder")
        return resolved

    async def mkdir(self, rel: str) -> Result[str]:
        """Create a folder under an existing parent; an existing folder is accepted."""
        safe = safe_rel_path(rel)
        if safe is None:
            return Result.Err(ErrorCode.INVALID_INPUT, "Invalid path")
        key = to_rel_key(safe)
        if not key:
            return Result.Err(ErrorCode.INVALID_INPUT, "Folder name is required")

        parent_key = to_rel_key(safe.parent)
        parent = await self._library.resolve(parent_key)
        if not parent.ok:
            if parent.code == ErrorCode.NOT_FOUND.value:
                return Result.Err(ErrorCode.NOT_FOUND, "Parent folder not found")
            return Result.Err(parent.code, parent.error or "Invalid path")

        target = parent.data.path / safe.name
        made = await run_blocking(lambda: target.mkdir(exist_ok=True), label="mkdir")
        if not made.ok:
            return _fs_error(made, "Unable to create folder")
        log_success(logger, f"Created folder {key}")
        return Result.Ok(key)

    async def delete(self, paths: Iterable[str], recursive: bool = False) -> Result[int]:
        """
        Delete files or folders, dropping their cached records.

        Folders require `recursive` unless empty. Processing stops at the first
        failure; earlier deletions stay applied.
        """
        items = list(paths or [])
        if not items:
            return Result.Err(ErrorCode.INVALID_INPUT, "No paths provided")

        removed = 0
        for rel in items:
            resolved = await self._resolve_existing(rel)
            if not resolved.ok:
                return Result.Err(resolved.code, resolved.error or "Invalid path")
            target = resolved.data

            outcome = await run_blocking(_remove, target.path, bool(recursive), label="delete")
            if not outcome.ok:
                return _fs_error(outcome, "Unable to delete path")

            forgotten = await self._consistency.forget(target.rel, is_dir=bool(outcome.data))
            if not forgotten.ok:
                return Result.Err(forgotten.code, forgotten.error or "Failed to update metadata")
            removed += 1
        return Result.Ok(removed)

    async def move(self, paths: Iterable[str], destination: str) -> Result[list[str]]:
        """Move files or folders into the `destination` folder, rewriting cached paths."""
        items = list(paths or [])
        if not items:
            return Result.Err(ErrorCode.INVALID_INPUT, "No paths provided")

        dest = await self._resolve_folder(destination, "Destination")
        if not dest.ok:
            return Result.Err(dest.code, dest.error or "Invalid destination")
        dest_dir = dest.data

        moved: list[str] = []
        for rel in items:
            resolved = await self._resolve_existing(rel)
            if not resolved.ok:
                return Result.Err(resolved.code, resolved.error or "Invalid path")
            source = resolved.data

            is_dir = await run_blocking(source.path.is_dir, label="is_dir")
            if not is_dir.ok:
                return _fs_error(is_dir, "Unable to move path")
            if is_dir.data and is_same_or_child(dest_dir.path, source.path):
                return Result.Err(ErrorCode.INVALID_INPUT, "Cannot move a folder into itself")

            name = source.path.name
            target_rel = f"{dest_dir.rel}/{name}" if dest_dir.rel else name
            target_path = dest_dir.path / name
            if target_rel == source.rel:
                continue

            renamed = await run_blocking(_rename_no_clobber, source.path, target_path, label="move")
            if not renamed.ok:
                if isinstance(renamed.meta.get("exception"), FileExistsError):
                    return Result.Err(ErrorCode.INVALID_INPUT, "Destination already exists")
                return _fs_error(renamed, "Unable to move path")

            relocated = await self._consistency.relocate(source.rel, target_rel, is_dir=bool(is_dir.data))
            if not relocated.ok:
                return Result.Err(relocated.code, relocated.error or "Failed to update metadata")
            moved.append(target_rel)
        return Result.Ok(moved)

    async def save_upload(self, destination: str, filename: str, chunks: AsyncIterable[bytes]) -> Result[str]:
        """
        Stream an uploaded RAW file into `destination`.

        Only the final path component of `filename` is used. Existing files are
        never overwritten; a partial upload leaves nothing behind.
        """
        name = Path(str(filename or "").replace("\\", "/")).name
        if not name or name in (".", "..") or "\x00" in name:
            return Result.Err(ErrorCode.INVALID_INPUT, "Invalid file name")
        if not is_supported_raw(name):
            return Result.Err(ErrorCode.INVALID_INPUT, "Unsupported file type")

        dest = await self._resolve_folder(destination, "Destination")
        if not dest.ok:
            return Result.Err(dest.code, dest.error or "Invalid destination")
        dest_dir = dest.data
        target = dest_dir.path / name
        target_rel = f"{dest_dir.rel}/{name}" if dest_dir.rel else name

        exists = await run_blocking(target.exists, label="exists")
        if not exists.ok:
            return _fs_error(exists, "Unable to create file")
        if exists.data:
            return Result.Err(ErrorCode.INVALID_INPUT, "File already exists")

        opened = await run_blocking(_open_temp, dest_dir.path, label="upload_open")
        if not opened.ok:
            return _fs_error(opened, "Unable to create file")
        fd, tmp_path = opened.data

        written = 0
        try:
            async for chunk in chunks:
                if not chunk:
                    continue
                wrote = await run_blocking(_write_chunk, fd, bytes(chunk), label="upload_write")
                if not wrote.ok:
                    await run_blocking(_discard_upload, fd, tmp_path, label="upload_discard")
                    return _fs_error(wrote, "Unable to write file")
                written += len(chunk)
        except Exception as exc:
            await run_blocking(_discard_upload, fd, tmp_path, label="upload_discard")
            logger.warning("Upload of %s aborted: %s", name, exc)
            return Result.Err(ErrorCode.INTERNAL, f"Upload interrupted: {exc}")

        published = await run_blocking(_publish_upload, fd, tmp_path, target, label="upload_publish")
        if not published.ok:
            if isinstance(published.meta.get("exception"), FileExistsError):
                return Result.Err(ErrorCode.INVALID_INPUT, "File already exists")
            return _fs_error(published, "Unable to write file")

        log_success(logger, f"Uploaded {target_rel} ({written} bytes)")
        return Result.Ok(target_rel, size=written)
