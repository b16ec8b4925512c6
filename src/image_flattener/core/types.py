"""Shared configuration and callback types."""

import inspect
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from ..utils.digest import random_layer_id

# File names of the legacy "docker save" layout
REPOSITORIES_FILE = "repositories"
LAYER_METADATA_FILE = "json"
LAYER_ARCHIVE_FILE = "layer.tar"
LAYER_VERSION_FILE = "VERSION"
LAYER_SCHEMA_VERSION = "1.0"

# progress(stage, message); may be a plain function or a coroutine function
ProgressCallback = Callable[[str, str], Any]

LayerIdFactory = Callable[[Path], str]


@dataclass
class FlattenConfig:
    """Settings for a flattening run.

    Attributes:
        timeout: Seconds allowed per archive operation, None for no limit
        layer_id_factory: Produces the merged layer ID from its packed archive
        work_dir: Parent directory in which the archive driver creates a fresh
            scratch directory; never emptied
        keep_work_dir: Keep scratch state after a successful run
    """

    timeout: float | None = None
    layer_id_factory: LayerIdFactory = random_layer_id
    work_dir: Path | None = None
    keep_work_dir: bool = False


async def notify(
    progress: ProgressCallback | None, stage: str, message: str
) -> None:
    """Report progress to an optional sync or async observer."""
    if progress is None:
        return
    if inspect.iscoroutinefunction(progress):
        await progress(stage, message)
    else:
        progress(stage, message)
