"""Replay of layer filesystem deltas onto a single working tree."""

import asyncio
import logging
import os
import posixpath
from pathlib import Path
from typing import Iterable

from ..exceptions import MalformedImageError
from ..models import LayerChain
from ..tar.codec import ArchiveCodec, TarArchiveCodec
from ..utils.fs import initialize_empty_directory, is_within, remove_path
from .types import LAYER_ARCHIVE_FILE, ProgressCallback, notify

logger = logging.getLogger(__name__)

WHITEOUT_PREFIX = ".wh."
OPAQUE_MARKER = ".wh..wh..opq"


def is_whiteout(name: str) -> bool:
    """Check if a basename is a whiteout marker."""
    return name.startswith(WHITEOUT_PREFIX)


def whiteout_target(marker: Path) -> Path:
    """Return the sibling path a whiteout marker deletes."""
    return marker.with_name(marker.name[len(WHITEOUT_PREFIX):])


def find_whiteouts(working_tree: Path) -> list[Path]:
    """Collect every whiteout marker below ``working_tree``, sorted."""
    markers = []
    for dirpath, dirnames, filenames in os.walk(working_tree):
        for name in dirnames + filenames:
            if is_whiteout(name):
                markers.append(Path(dirpath) / name)
    return sorted(markers)


def apply_whiteouts(working_tree: Path) -> list[Path]:
    """Delete whiteout markers and the paths they shadow.

    A marker whose target does not exist is removed without error.
    Directory targets are removed with all descendants.

    Returns:
        Markers that were consumed
    """
    markers = find_whiteouts(Path(working_tree))
    for marker in markers:
        # An earlier marker may have removed the directory holding this one
        remove_path(marker)
        target = whiteout_target(marker)
        if remove_path(target):
            logger.debug("Whiteout removed %s", target)
    return markers


def opaque_directories(names: Iterable[str]) -> list[str]:
    """Return relative directories that a layer's opaque markers reset."""
    dirs = {
        posixpath.dirname(name)
        for name in names
        if posixpath.basename(name) == OPAQUE_MARKER
    }
    return sorted(dirs)


def clear_opaque_directories(working_tree: Path, names: Iterable[str]) -> list[Path]:
    """Empty directories marked opaque by the next layer's member names.

    Must run before that layer is extracted so only content from earlier
    layers is hidden.

    Returns:
        Directories that were emptied

    Raises:
        MalformedImageError: If a marker sits below a symlink leading out of
            the working tree
    """
    cleared = []
    for relative in opaque_directories(names):
        directory = Path(working_tree) / relative if relative else Path(working_tree)
        if not directory.is_dir() or directory.is_symlink():
            continue
        if not is_within(working_tree, directory):
            raise MalformedImageError(
                f"Opaque marker in {relative} resolves outside the working tree: "
                f"{os.path.realpath(directory)}"
            )
        for entry in os.listdir(directory):
            remove_path(directory / entry)
        cleared.append(directory)
    return cleared


async def apply_layer(
    codec: ArchiveCodec, layer_archive: Path, working_tree: Path
) -> list[Path]:
    """Extract one layer on top of the working tree and apply its whiteouts."""
    names = await codec.list_names(layer_archive)
    loop = asyncio.get_running_loop()

    cleared = await loop.run_in_executor(
        None, clear_opaque_directories, working_tree, names
    )
    for directory in cleared:
        logger.debug("Opaque marker reset %s", directory)

    await codec.extract(layer_archive, working_tree)
    return await loop.run_in_executor(None, apply_whiteouts, working_tree)


async def merge_layers(
    image_tree: Path,
    chain: LayerChain,
    working_tree: Path,
    codec: ArchiveCodec | None = None,
    progress: ProgressCallback | None = None,
) -> Path:
    """Stack every layer of ``chain`` into an empty ``working_tree``.

    Args:
        image_tree: Directory holding the unpacked input image
        chain: Layers ordered root first
        working_tree: Directory to (re)create and fill
        codec: Archive codec, defaults to TarArchiveCodec without timeout
        progress: Optional progress observer

    Returns:
        Path of the merged working tree

    Raises:
        ExternalToolError: If a layer archive cannot be extracted
        MalformedImageError: If an opaque marker leads out of the working tree
        OSError: If the working tree cannot be modified
    """
    codec = codec or TarArchiveCodec()
    working_tree = Path(working_tree)

    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, initialize_empty_directory, working_tree)

    await notify(progress, "merge", "Unpacking layers on top of each other...")
    for layer_id in chain:
        await notify(progress, "merge", f"Writing layer {layer_id}...")
        layer_archive = Path(image_tree) / layer_id / LAYER_ARCHIVE_FILE
        markers = await apply_layer(codec, layer_archive, working_tree)
        logger.debug("Layer %s applied %d whiteouts", layer_id, len(markers))

    return working_tree
