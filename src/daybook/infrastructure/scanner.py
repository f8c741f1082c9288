"""Recursive scan for dated journal files (``YYYY-MM-DD.md``)."""

from __future__ import annotations

import logging
import os
import re
import stat
from dataclasses import dataclass
from datetime import date
from pathlib import Path

logger = logging.getLogger(__name__)

_DATED_FILENAME_RE = re.compile(r"^([0-9]{4})-([0-9]{2})-([0-9]{2})\.md$")


@dataclass(frozen=True)
class ScannedFile:
    """A dated journal file found on disk."""

    path: str
    modified_at_ms: int


def parse_entry_date(file_name: str) -> date | None:
    """Return the calendar date encoded in a journal filename.

    Accepts a bare name or a full path. Returns ``None`` when the name does
    not follow the ``YYYY-MM-DD.md`` convention or the date does not exist
    (e.g. ``2023-02-30.md``).
    """
    match = _DATED_FILENAME_RE.match(Path(file_name).name)
    if match is None:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def is_dated_entry(file_name: str) -> bool:
    """Check whether *file_name* is a valid dated journal filename."""
    return parse_entry_date(file_name) is not None


def _log_walk_error(exc: OSError) -> None:
    logger.warning("Skipping unreadable directory %s: %s", exc.filename, exc.strerror)


def scan_dated_files(root: str | Path) -> list[ScannedFile]:
    """Walk *root* recursively and collect dated journal files with mtimes.

    Non-matching names and directories are skipped silently; entries whose
    metadata cannot be read are logged and skipped. Order follows the
    filesystem enumeration.
    """
    files: list[ScannedFile] = []
    root_str = os.fspath(root)
    if not os.path.isdir(root_str):
        logger.debug("Scan root %s is not a directory", root_str)
        return files

    for dirpath, _dirnames, filenames in os.walk(root_str, onerror=_log_walk_error):
        for name in filenames:
            if not is_dated_entry(name):
                continue
            full_path = os.path.join(dirpath, name)
            try:
                st = os.stat(full_path)
            except OSError as exc:
                logger.warning("Cannot stat %s: %s", full_path, exc)
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            files.append(ScannedFile(path=full_path, modified_at_ms=st.st_mtime_ns // 1_000_000))

    return files
