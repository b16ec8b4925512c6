"""Test helpers for building synthetic legacy image trees."""

import io
import json
import tarfile
from pathlib import Path

# Layer IDs used across tests, root first
LAYER_A = "a" * 64
LAYER_B = "b" * 64
LAYER_C = "c" * 64

DIR = object()


class Link:
    """Symlink entry for ``write_layer_tar``."""

    def __init__(self, target: str) -> None:
        self.target = target


def add_bytes(tar: tarfile.TarFile, name: str, content: bytes, mode: int = 0o644) -> None:
    """Add a regular file member to an open tar."""
    info = tarfile.TarInfo(name)
    info.size = len(content)
    info.mode = mode
    tar.addfile(info, fileobj=io.BytesIO(content))


def add_dir(tar: tarfile.TarFile, name: str, mode: int = 0o755) -> None:
    """Add a directory member to an open tar."""
    info = tarfile.TarInfo(name)
    info.type = tarfile.DIRTYPE
    info.mode = mode
    tar.addfile(info)


def add_symlink(tar: tarfile.TarFile, name: str, target: str) -> None:
    """Add a symlink member to an open tar."""
    info = tarfile.TarInfo(name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    tar.addfile(info)


def write_layer_tar(path: Path, entries: dict) -> Path:
    """Write a layer archive.

    ``entries`` maps member names to bytes (regular file), ``DIR`` or a
    ``Link``.
    Whiteouts are plain empty files named ``.wh.<name>``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w") as tar:
        for name, content in entries.items():
            if content is DIR:
                add_dir(tar, name)
            elif isinstance(content, Link):
                add_symlink(tar, name, content.target)
            else:
                add_bytes(tar, name, content)
    return path


def write_image_tree(
    root: Path,
    layers: list[tuple[str, str | None, dict]],
    repositories: dict | None = None,
    extra_metadata: dict | None = None,
) -> Path:
    """Write an unpacked legacy image.

    Args:
        root: Directory to populate
        layers: (layer_id, parent_id, entries) in any order
        repositories: repositories content; defaults to "test/image:latest"
            pointing at the last layer given
        extra_metadata: fields added to every layer json
    """
    root.mkdir(parents=True, exist_ok=True)
    for layer_id, parent, entries in layers:
        layer_dir = root / layer_id
        layer_dir.mkdir()
        metadata = {
            "id": layer_id,
            "created": "2015-06-01T12:00:00.0000000Z",
            "container": "f" * 64,
            "Size": 0,
            "os": "linux",
            "architecture": "amd64",
        }
        if parent is not None:
            metadata["parent"] = parent
        metadata.update(extra_metadata or {})
        (layer_dir / "json").write_text(json.dumps(metadata))
        (layer_dir / "VERSION").write_text("1.0")
        write_layer_tar(layer_dir / "layer.tar", entries)

    if repositories is None:
        repositories = {"test/image": {"latest": layers[-1][0]}}
    (root / "repositories").write_text(json.dumps(repositories))
    return root


def pack_tree(src: Path, archive: Path) -> Path:
    """Pack a directory's top-level entries into an archive."""
    with tarfile.open(archive, "w") as tar:
        for entry in sorted(src.iterdir()):
            tar.add(entry, arcname=entry.name)
    return archive


def read_tar_files(archive: Path) -> dict[str, bytes]:
    """Map regular file member names to their contents."""
    files = {}
    with tarfile.open(archive, "r") as tar:
        for member in tar:
            if member.isfile():
                files[member.name] = tar.extractfile(member).read()
    return files


def tree_files(root: Path) -> dict[str, bytes]:
    """Map relative posix paths of regular files below ``root`` to contents."""
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file() and not path.is_symlink()
    }
