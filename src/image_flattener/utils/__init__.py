"""Utility functions for the image flattener."""

from .digest import calculate_digest, content_layer_id, random_layer_id
from .validator import is_valid_layer_id, parse_name_version

__all__ = [
    "calculate_digest",
    "content_layer_id",
    "random_layer_id",
    "is_valid_layer_id",
    "parse_name_version",
]
