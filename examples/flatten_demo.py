"""Demonstration of flattening a synthetic two layer image."""

import asyncio
import io
import json
import logging
import shutil
import sys
import tarfile
import tempfile
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, "src")

from image_flattener import flatten_image_archive

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_ID = "1" * 64
TOP_ID = "2" * 64


def create_layer(files: dict[str, bytes]) -> bytes:
    """Create an in-memory layer archive."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, fileobj=io.BytesIO(content))
    return buffer.getvalue()


def add_bytes(tar: tarfile.TarFile, name: str, content: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(content)
    tar.addfile(info, fileobj=io.BytesIO(content))


def create_image(tar_path: Path) -> None:
    """Create a legacy image: base writes two files, top removes one."""
    layers = {
        BASE_ID: (None, {"etc/motd": b"hello\n", "tmp/cache.bin": b"x" * 4096}),
        TOP_ID: (BASE_ID, {"app/run.sh": b"#!/bin/sh\necho hi\n", "tmp/.wh.cache.bin": b""}),
    }

    with tarfile.open(tar_path, "w") as tar:
        for layer_id, (parent, files) in layers.items():
            metadata = {"id": layer_id, "created": "2015-06-01T12:00:00Z", "Size": 0}
            if parent:
                metadata["parent"] = parent
            add_bytes(tar, f"{layer_id}/json", json.dumps(metadata).encode("utf-8"))
            add_bytes(tar, f"{layer_id}/VERSION", b"1.0")
            add_bytes(tar, f"{layer_id}/layer.tar", create_layer(files))

        repositories = {"demo": {"latest": TOP_ID}}
        add_bytes(tar, "repositories", json.dumps(repositories).encode("utf-8"))


def log_progress(stage: str, message: str) -> None:
    logger.info(f"[{stage}] {message}")


async def main():
    """Flatten the demo image and show the result."""
    workdir = Path(tempfile.mkdtemp())

    try:
        input_path = workdir / "demo.tar"
        output_path = workdir / "demo-flat.tar"
        create_image(input_path)

        merged = await flatten_image_archive(
            input_path, output_path, "demo:flat", progress=log_progress
        )
        logger.info(f"Flattened layer: {merged.layer_id} ({merged.size} bytes)")

        with tarfile.open(output_path) as tar:
            for name in tar.getnames():
                logger.info(f"  {name}")
    finally:
        shutil.rmtree(workdir, ignore_errors=True)


if __name__ == "__main__":
    asyncio.run(main())
