"""Folder path normalization and hashing into index-location keys."""

from __future__ import annotations

import hashlib
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

# Folder key: SHA-256 hex digest of the normalized folder path.
FolderKey = str


def normalize_folder(folder_path: str | os.PathLike[str]) -> str:
    """Return an absolute, lexically normalized spelling of *folder_path*.

    Does not touch the filesystem, so symlinked spellings stay distinct.
    """
    return os.path.abspath(os.path.expanduser(os.fspath(folder_path)))


def folder_key(folder_path: str) -> FolderKey:
    """Hash an absolute folder path into a stable, directory-safe key."""
    return hashlib.sha256(folder_path.encode("utf-8")).hexdigest()


def index_dir_for(data_dir: Path, key: FolderKey) -> Path:
    """Return the directory that holds the on-disk index for *key*."""
    return data_dir / "indexes" / key
