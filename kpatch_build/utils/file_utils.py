#!/usr/bin/env python3
"""
File utilities for the kpatch build pipeline.
Provides common file operations and path management.
"""

import shutil
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


def ensure_directory(path: PathLike) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to create

    Returns:
        Path object for the directory
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def remove_path(path: PathLike) -> bool:
    """
    Remove a file, symlink or directory tree if it exists.

    Args:
        path: Path to remove

    Returns:
        True if something was removed, False if the path did not exist
    """
    target = Path(path)
    if target.is_symlink() or target.is_file():
        target.unlink()
        return True
    if target.is_dir():
        shutil.rmtree(target)
        return True
    return False


def copy_into(source: PathLike, directory: PathLike) -> Path:
    """
    Copy a file into a directory, keeping its base name.

    Args:
        source: File to copy
        directory: Destination directory (created if missing)

    Returns:
        Path of the copy
    """
    destination = ensure_directory(directory) / Path(source).name
    shutil.copy2(source, destination)
    return destination


def copy_tree(source: PathLike, destination: PathLike) -> Path:
    """Copy a directory tree, replacing whatever is at the destination."""
    remove_path(destination)
    shutil.copytree(source, destination, symlinks=True)
    return Path(destination)

