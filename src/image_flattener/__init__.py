"""Image Flattener - squash a legacy multi-layer image export into one layer."""

__version__ = "0.1.0"

from .core.finalizer import finalize_image
from .core.merger import apply_whiteouts, merge_layers
from .core.resolver import resolve_layer_chain
from .core.types import FlattenConfig
from .exceptions import (
    ArchiveTimeoutError,
    CyclicChainError,
    ExternalToolError,
    FlattenError,
    InvalidNameVersionError,
    MalformedImageError,
)
from .flatten import flatten, flatten_image_archive
from .models import LayerChain, LayerRecord, MergedLayer, RepositoryPointer
from .tar.codec import ArchiveCodec, TarArchiveCodec
from .utils.digest import content_layer_id, random_layer_id
from .utils.validator import parse_name_version

__all__ = [
    # Main operations
    "flatten",
    "flatten_image_archive",
    "resolve_layer_chain",
    "merge_layers",
    "apply_whiteouts",
    "finalize_image",
    "parse_name_version",
    # Configuration
    "FlattenConfig",
    "random_layer_id",
    "content_layer_id",
    # Archives
    "ArchiveCodec",
    "TarArchiveCodec",
    # Models
    "LayerChain",
    "LayerRecord",
    "MergedLayer",
    "RepositoryPointer",
    # Exceptions
    "FlattenError",
    "MalformedImageError",
    "CyclicChainError",
    "InvalidNameVersionError",
    "ExternalToolError",
    "ArchiveTimeoutError",
]
