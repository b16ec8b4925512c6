"""Digest calculation and layer ID generation."""

import hashlib
import secrets
from pathlib import Path

# 256-bit layer IDs rendered as lowercase hex
LAYER_ID_BYTES = 32

_CHUNK_SIZE = 1024 * 1024


def calculate_digest(path: Path, algorithm: str = "sha256") -> str:
    """Calculate digest of a file's contents.

    Args:
        path: File to hash
        algorithm: Hash algorithm (default: sha256)

    Returns:
        Digest string in format "algorithm:hex"

    Raises:
        ValueError: If algorithm is not supported
    """
    if algorithm not in hashlib.algorithms_available:
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return f"{algorithm}:{hasher.hexdigest()}"


def random_layer_id(_archive: Path | None = None) -> str:
    """Mint a random 256-bit layer ID. The archive argument is ignored."""
    return secrets.token_hex(LAYER_ID_BYTES)


def content_layer_id(archive: Path) -> str:
    """Derive the layer ID from the sha256 of the packed layer archive."""
    return calculate_digest(archive, "sha256").split(":", 1)[1]
