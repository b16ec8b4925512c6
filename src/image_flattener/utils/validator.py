"""Validation of user supplied names and on-disk identifiers."""

import re

from ..exceptions import InvalidNameVersionError

# <name>:<version>, split on the last colon so "host:5000/app:1.0" keeps its port
NAME_VERSION_PATTERN = re.compile(r"(?P<name>.+):(?P<version>[^:\s]+)")

LAYER_ID_PATTERN = re.compile(r"[a-f0-9]{64}")


def parse_name_version(name_version: str) -> tuple[str, str]:
    """Split a ``name:version`` string into its two parts.

    Args:
        name_version: Output image reference, e.g. "myimage:1.0"

    Returns:
        tuple[str, str]: (name, version)

    Raises:
        InvalidNameVersionError: If the string does not match the grammar

    Examples:
        parse_name_version("myimage:1.0")
        # ("myimage", "1.0")

        parse_name_version("localhost:5000/app:latest")
        # ("localhost:5000/app", "latest")
    """
    if not isinstance(name_version, str):
        raise InvalidNameVersionError(f"Invalid name:version pair {name_version!r}")

    match = NAME_VERSION_PATTERN.fullmatch(name_version)
    if match is None:
        raise InvalidNameVersionError(f"Invalid name:version pair '{name_version}'")
    return match.group("name"), match.group("version")


def is_valid_layer_id(layer_id: str) -> bool:
    """Check if a string looks like a 64 character lowercase hex layer ID."""
    return isinstance(layer_id, str) and bool(LAYER_ID_PATTERN.fullmatch(layer_id))
