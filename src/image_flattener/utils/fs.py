"""Filesystem primitives shared by the merge and finalize stages."""

import os
import shutil
import stat
from pathlib import Path


def initialize_empty_directory(path: Path) -> Path:
    """Remove ``path`` if present and recreate it empty."""
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)
    return path


def remove_path(path: Path) -> bool:
    """Delete a file, symlink or directory tree.

    Returns:
        True if something was removed, False if nothing existed at ``path``
    """
    if not os.path.lexists(path):
        return False
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)
    return True


def compute_tree_size(root: Path) -> int:
    """Sum the sizes of all regular files below ``root``.

    Symlinks are not followed and count as zero bytes.
    """
    total = 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            st = os.lstat(os.path.join(dirpath, name))
            if stat.S_ISREG(st.st_mode):
                total += st.st_size
    return total


def is_within(root: Path, path: Path) -> bool:
    """Check that ``path`` resolves, through any symlinks, to a place under ``root``."""
    real_root = os.path.realpath(root)
    real_path = os.path.realpath(path)
    return os.path.commonpath([real_root, real_path]) == real_root
