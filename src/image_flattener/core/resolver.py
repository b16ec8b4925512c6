"""Layer chain resolution from parent pointers."""

import json
import logging
from pathlib import Path
from typing import Any

import aiofiles

from ..exceptions import CyclicChainError, MalformedImageError
from ..models import LayerChain, LayerRecord, RepositoryPointer
from .types import LAYER_METADATA_FILE, REPOSITORIES_FILE, ProgressCallback, notify

logger = logging.getLogger(__name__)


async def _read_json(path: Path, description: str) -> Any:
    """Read and decode a JSON file, mapping failures to MalformedImageError."""
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
    except FileNotFoundError as e:
        raise MalformedImageError(f"{description} not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedImageError(f"Cannot read {description} {path}: {e}") from e

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedImageError(f"Invalid JSON in {description} {path}: {e}") from e


async def read_repository_pointer(image_tree: Path) -> RepositoryPointer:
    """Read the ``repositories`` file of an unpacked image.

    Raises:
        MalformedImageError: If the file is missing, empty or ambiguous
    """
    data = await _read_json(Path(image_tree) / REPOSITORIES_FILE, "repositories file")
    return RepositoryPointer.from_dict(data)


async def read_layer_record(image_tree: Path, layer_id: str) -> LayerRecord:
    """Read ``<layer_id>/json`` of an unpacked image.

    Raises:
        MalformedImageError: If the record is missing or unreadable
    """
    path = Path(image_tree) / layer_id / LAYER_METADATA_FILE
    data = await _read_json(path, f"metadata of layer {layer_id}")
    return LayerRecord.from_dict(data)


async def resolve_layer_chain(
    image_tree: Path, progress: ProgressCallback | None = None
) -> LayerChain:
    """Determine layer order from the tagged leaf down to the root.

    Args:
        image_tree: Directory holding an unpacked legacy image
        progress: Optional progress observer

    Returns:
        LayerChain ordered root first, leaf last

    Raises:
        MalformedImageError: If the repository pointer or a layer record is invalid
        CyclicChainError: If parent pointers loop
    """
    pointer = await read_repository_pointer(image_tree)
    logger.debug(
        "Image %s:%s points at layer %s", pointer.name, pointer.version, pointer.layer_id
    )

    visited: list[str] = []
    records: dict[str, LayerRecord] = {}
    layer_id: str | None = pointer.layer_id

    while layer_id is not None:
        if layer_id in records:
            cycle = " -> ".join(visited + [layer_id])
            raise CyclicChainError(f"Layer parent chain loops: {cycle}")

        record = await read_layer_record(image_tree, layer_id)
        visited.append(layer_id)
        records[layer_id] = record
        layer_id = record.parent

    visited.reverse()

    await notify(progress, "resolve", "Computed layer chain order:")
    for chain_id in visited:
        await notify(progress, "resolve", f"  {chain_id}")

    return LayerChain(layer_ids=visited, records=records)
