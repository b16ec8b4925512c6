"""Synthesis of the single merged layer and its output image tree."""

import asyncio
import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

import aiofiles

from ..exceptions import MalformedImageError
from ..models import LayerRecord, MergedLayer, RepositoryPointer
from ..utils.digest import random_layer_id
from ..utils.fs import compute_tree_size, initialize_empty_directory
from ..utils.validator import is_valid_layer_id, parse_name_version
from .types import (
    LAYER_ARCHIVE_FILE,
    LAYER_METADATA_FILE,
    LAYER_SCHEMA_VERSION,
    LAYER_VERSION_FILE,
    REPOSITORIES_FILE,
    LayerIdFactory,
    ProgressCallback,
    notify,
)

logger = logging.getLogger(__name__)


def utc_timestamp(now: datetime | None = None) -> str:
    """Format a UTC timestamp the way layer records store ``created``."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


async def _write_text(path: Path, content: str) -> None:
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(content)


async def finalize_image(
    working_tree: Path,
    layer_archive: Path,
    leaf_record: LayerRecord,
    name_version: str,
    output_tree: Path,
    layer_id_factory: LayerIdFactory = random_layer_id,
    progress: ProgressCallback | None = None,
) -> MergedLayer:
    """Write the merged layer and repository pointer into ``output_tree``.

    Args:
        working_tree: Merged filesystem, used for the size computation
        layer_archive: Packed ``working_tree``; moved into the output layer
        leaf_record: Metadata of the top layer of the input chain
        name_version: Output reference, e.g. "myimage:1.0"
        output_tree: Directory to (re)create with the flattened image
        layer_id_factory: Mints the new layer ID from ``layer_archive``
        progress: Optional progress observer

    Returns:
        MergedLayer describing the written layer

    Raises:
        InvalidNameVersionError: If ``name_version`` is invalid, before any write
        MalformedImageError: If the ID factory returns a malformed ID
        OSError: If the output tree cannot be written
    """
    name, version = parse_name_version(name_version)
    loop = asyncio.get_running_loop()

    await notify(progress, "size", "Computing filesystem data size...")
    size = await loop.run_in_executor(None, compute_tree_size, Path(working_tree))
    await notify(progress, "size", f"{size} bytes")

    layer_id = await loop.run_in_executor(None, layer_id_factory, Path(layer_archive))
    if not is_valid_layer_id(layer_id):
        raise MalformedImageError(f"Generated layer ID is not 64 hex digits: {layer_id!r}")
    await notify(progress, "metadata", f"Generated image ID {layer_id}")

    record = leaf_record.flattened(layer_id, size, utc_timestamp())
    repository = RepositoryPointer(name=name, version=version, layer_id=layer_id)

    await notify(progress, "finalize", "Gathering layer data and metadata...")
    output_tree = Path(output_tree)
    await loop.run_in_executor(None, initialize_empty_directory, output_tree)

    layer_dir = output_tree / layer_id
    layer_dir.mkdir()
    archive_path = layer_dir / LAYER_ARCHIVE_FILE
    await loop.run_in_executor(None, shutil.move, str(layer_archive), str(archive_path))

    await _write_text(layer_dir / LAYER_METADATA_FILE, json.dumps(record.to_dict(), indent=2))
    await _write_text(layer_dir / LAYER_VERSION_FILE, LAYER_SCHEMA_VERSION)
    await _write_text(
        output_tree / REPOSITORIES_FILE, json.dumps(repository.to_dict(), indent=2)
    )
    logger.debug("Wrote flattened layer %s to %s", layer_id, layer_dir)

    return MergedLayer(
        layer_id=layer_id,
        record=record,
        repository=repository,
        layer_dir=layer_dir,
        archive_path=archive_path,
        size=size,
        version=LAYER_SCHEMA_VERSION,
    )
