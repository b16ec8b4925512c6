"""Tar archive codec used to unpack and repack image trees and layers."""

import asyncio
import logging
import lzma
import os
import tarfile
import threading
import zlib
from pathlib import Path
from typing import Callable, Protocol, TypeVar

from ..exceptions import ArchiveTimeoutError, ExternalToolError
from ..utils.fs import is_within, remove_path

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ArchiveCodec(Protocol):
    """Extracts archives into directories and packs directories into archives."""

    async def extract(self, archive_path: Path, dest_dir: Path) -> None: ...

    async def pack(self, src_dir: Path, archive_path: Path) -> None: ...

    async def list_names(self, archive_path: Path) -> list[str]: ...


class _Cancelled(Exception):
    """Internal signal raised inside a worker thread once its timeout expired."""


class TarArchiveCodec:
    """Async codec for uncompressed or compressed tar archives.

    Work runs in the default executor. When ``timeout`` expires the worker is
    told to stop at the next archive member and the call raises
    ``ArchiveTimeoutError`` once it has stopped.
    """

    def __init__(self, timeout: float | None = None) -> None:
        """Initialize the codec.

        Args:
            timeout: Seconds allowed per operation, None for no limit
        """
        self.timeout = timeout

    async def extract(self, archive_path: Path, dest_dir: Path) -> None:
        """Extract an archive on top of ``dest_dir``.

        Existing files at the same path are replaced, existing directories
        are merged with the archive's directories.

        Raises:
            ExternalToolError: If the archive cannot be read or written out
            ArchiveTimeoutError: If the timeout expired
        """
        logger.debug("Extracting %s into %s", archive_path, dest_dir)
        await self._run(
            f"extract {archive_path}", _extract_archive, Path(archive_path), Path(dest_dir)
        )

    async def pack(self, src_dir: Path, archive_path: Path) -> None:
        """Pack the contents of ``src_dir`` into an uncompressed tar archive.

        Raises:
            ExternalToolError: If the archive cannot be written
            ArchiveTimeoutError: If the timeout expired
        """
        logger.debug("Packing %s into %s", src_dir, archive_path)
        await self._run(
            f"pack {src_dir}", _pack_directory, Path(src_dir), Path(archive_path)
        )

    async def list_names(self, archive_path: Path) -> list[str]:
        """List member names of an archive, normalized to relative paths.

        Raises:
            ExternalToolError: If the archive cannot be read
            ArchiveTimeoutError: If the timeout expired
        """
        return await self._run(f"list {archive_path}", _list_names, Path(archive_path))

    async def _run(
        self, operation: str, func: Callable[..., T], *args: object
    ) -> T:
        loop = asyncio.get_running_loop()
        cancel = threading.Event()
        future = loop.run_in_executor(None, _guarded, operation, func, cancel, *args)

        try:
            return await asyncio.wait_for(asyncio.shield(future), self.timeout)
        except asyncio.TimeoutError:
            cancel.set()
            # Wait for the worker to stop before surfacing the cancellation
            await asyncio.wait([future])
            raise ArchiveTimeoutError(
                f"Archive operation '{operation}' timed out after {self.timeout}s"
            ) from future.exception()


def _guarded(
    operation: str, func: Callable[..., T], cancel: threading.Event, *args: object
) -> T:
    """Run a worker and translate archive and I/O failures."""
    try:
        return func(*args, cancel)
    except _Cancelled:
        raise ArchiveTimeoutError(f"Archive operation '{operation}' was cancelled")
    # Truncated compressed streams surface as EOFError or the codec's own error
    except (tarfile.TarError, OSError, EOFError, zlib.error, lzma.LZMAError) as e:
        raise ExternalToolError(f"Archive operation '{operation}' failed: {e}") from e


def _check_cancelled(cancel: threading.Event) -> None:
    if cancel.is_set():
        raise _Cancelled()


def normalize_member_name(name: str) -> str | None:
    """Strip leading "./" and "/" from a member name; None for the archive root."""
    name = name.replace("\\", "/")
    while name.startswith("./"):
        name = name[2:]
    name = name.lstrip("/").rstrip("/")
    if name in ("", "."):
        return None
    return name


def _ensure_inside(dest_dir: Path, path: Path, member_name: str) -> None:
    """Refuse to touch ``path`` when symlinks resolve it outside ``dest_dir``."""
    if not is_within(dest_dir, path):
        raise ExternalToolError(
            f"Archive member '{member_name}' resolves outside the destination "
            f"{dest_dir}: {os.path.realpath(path)}"
        )


def _prepare_target(member: tarfile.TarInfo, target: Path) -> None:
    """Remove whatever sits at ``target`` unless it can be reused by ``member``."""
    if not os.path.lexists(target):
        return
    if os.path.islink(target):
        os.unlink(target)
    elif os.path.isdir(target):
        if not member.isdir():
            remove_path(target)
    else:
        # Regular files are always rewritten; unlink so hardlinked copies survive
        os.unlink(target)


def _extract_archive(archive_path: Path, dest_dir: Path, cancel: threading.Event) -> None:
    dest_dir.mkdir(parents=True, exist_ok=True)
    directories: list[tarfile.TarInfo] = []

    with tarfile.open(archive_path, "r:*") as tar:
        for member in tar:
            _check_cancelled(cancel)
            relpath = normalize_member_name(member.name)
            if relpath is None:
                continue
            member.name = relpath

            target = dest_dir / relpath
            # The parent may be a symlink left by this archive or an earlier layer
            _ensure_inside(dest_dir, target.parent, relpath)
            _prepare_target(member, target)
            target.parent.mkdir(parents=True, exist_ok=True)

            if member.isdir():
                # Modes are applied last so read-only directories can be filled
                target.mkdir(exist_ok=True)
                directories.append(member)
                continue
            tar.extract(member, dest_dir, set_attrs=True, filter="tar")

        for member in reversed(directories):
            _check_cancelled(cancel)
            path = dest_dir / member.name
            if os.path.islink(path):
                # Replaced by a later symlink member
                continue
            _ensure_inside(dest_dir, path, member.name)
            os.chmod(path, member.mode & 0o7777)
            os.utime(path, (member.mtime, member.mtime))


def _pack_directory(src_dir: Path, archive_path: Path, cancel: threading.Event) -> None:
    if not src_dir.is_dir():
        raise NotADirectoryError(f"Not a directory: {src_dir}")

    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive_path, "w", format=tarfile.PAX_FORMAT) as tar:
        for entry in sorted(os.listdir(src_dir)):
            _check_cancelled(cancel)
            tar.add(src_dir / entry, arcname=entry, recursive=False)
            if os.path.isdir(src_dir / entry) and not os.path.islink(src_dir / entry):
                _add_tree(tar, src_dir / entry, entry, cancel)


def _add_tree(
    tar: tarfile.TarFile, directory: Path, arcname: str, cancel: threading.Event
) -> None:
    for entry in sorted(os.listdir(directory)):
        _check_cancelled(cancel)
        path = directory / entry
        name = f"{arcname}/{entry}"
        tar.add(path, arcname=name, recursive=False)
        if os.path.isdir(path) and not os.path.islink(path):
            _add_tree(tar, path, name, cancel)


def _list_names(archive_path: Path, cancel: threading.Event) -> list[str]:
    names = []
    with tarfile.open(archive_path, "r:*") as tar:
        for member in tar:
            _check_cancelled(cancel)
            relpath = normalize_member_name(member.name)
            if relpath is not None:
                names.append(relpath)
    return names
