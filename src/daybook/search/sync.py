"""Sync engine: reconcile a folder index with the journal files on disk."""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import time
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from daybook.errors import SyncError
from daybook.infrastructure.db import get_meta, set_meta
from daybook.infrastructure.scanner import scan_dated_files
from daybook.search.models import SyncResult, SyncStatus
from daybook.search.registry import KeyedRegistry, LockAttempt, try_acquire

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from daybook.infrastructure.paths import FolderKey
    from daybook.search.store import FolderIndex

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 5.0


@dataclass(frozen=True)
class FileDelta:
    """Paths that differ between the live scan and the index."""

    added: frozenset[str]
    changed: frozenset[str]
    removed: frozenset[str]

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.changed or self.removed)


def diff_files(live: dict[str, int], indexed: dict[str, int]) -> FileDelta:
    """Compare ``{path: mtime_ms}`` maps of disk state and index state."""
    added = live.keys() - indexed.keys()
    removed = indexed.keys() - live.keys()
    changed = {path for path in live.keys() & indexed.keys() if live[path] != indexed[path]}
    return FileDelta(
        added=frozenset(added),
        changed=frozenset(changed),
        removed=frozenset(removed),
    )


def split_lines(content: str) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, text)`` for each non-blank line, 1-based.

    Lines are split on ``\\n`` with a trailing ``\\r`` removed, so numbering
    matches what an editor shows. Text is stored NFC-normalized so that
    decomposed accents match the same words typed precomposed.
    """
    for idx, raw in enumerate(content.split("\n"), start=1):
        line = raw[:-1] if raw.endswith("\r") else raw
        line = unicodedata.normalize("NFC", line)
        if not line.strip():
            continue
        yield idx, line


def _read_entry(path: str) -> str | None:
    """Read a journal file, returning ``None`` if it cannot be read."""
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("Skipping unreadable file %s: %s", path, exc)
        return None


class SyncEngine:
    """Brings folder indexes up to date, at most one sync per folder at a time.

    Owns the per-folder sync-lock table and last-sync-time table.
    """

    def __init__(
        self,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._debounce = debounce_seconds
        self._clock = clock
        self._locks: KeyedRegistry[threading.Lock] = KeyedRegistry()
        self._last_sync: KeyedRegistry[float] = KeyedRegistry()

    def lock_for(self, key: FolderKey) -> threading.Lock:
        """Return the sync lock for *key*, creating it on first use."""
        return self._locks.get_or_insert(key, threading.Lock)

    def last_sync_at(self, key: FolderKey) -> float | None:
        return self._last_sync.get(key)

    def _acquire(self, key: FolderKey, *, blocking: bool) -> threading.Lock | None:
        """Acquire the current sync lock for *key*.

        A lock that was replaced in the table while this caller waited for
        it is released and the lookup retried, so only the holder of the
        current entry may write. Returns ``None`` when *blocking* is false
        and the lock is held elsewhere.
        """
        while True:
            lock = self.lock_for(key)
            if blocking:
                lock.acquire()
            elif try_acquire(lock) is LockAttempt.ALREADY_LOCKED:
                return None
            if self._locks.get(key) is lock:
                return lock
            lock.release()

    @contextlib.contextmanager
    def exclusive(self, key: FolderKey) -> Iterator[None]:
        """Hold a freshly created sync lock for *key* for the whole block.

        Waits for any in-flight sync, then replaces the lock entry with a new
        lock that is already held and drops the last-sync time. Callers that
        looked up the old lock find it stale once they acquire it and retry
        against the new one.
        """
        previous = self._acquire(key, blocking=True)
        fresh = threading.Lock()
        fresh.acquire()
        self._locks.set(key, fresh)
        self._last_sync.pop(key)
        if previous is not None:
            previous.release()
        try:
            yield
        finally:
            fresh.release()

    def clear(self) -> None:
        self._locks.clear()
        self._last_sync.clear()

    def _debounced(self, key: FolderKey) -> bool:
        last = self._last_sync.get(key)
        return last is not None and self._clock() - last < self._debounce

    def maybe_sync(self, index: FolderIndex) -> SyncResult:
        """Opportunistic sync: never waits for another sync of the same folder.

        Skips when the folder's lock is held elsewhere or the previous sync
        finished less than the debounce interval ago.
        """
        lock = self._acquire(index.key, blocking=False)
        if lock is None:
            logger.debug("Sync already running for %s, skipping", index.folder_path)
            return SyncResult(status=SyncStatus.SKIPPED_LOCKED)
        try:
            if self._debounced(index.key):
                return SyncResult(status=SyncStatus.SKIPPED_DEBOUNCED)
            return self.run_locked(index)
        finally:
            lock.release()

    def sync_now(self, index: FolderIndex, *, blocking: bool = True) -> SyncResult:
        """Sync ignoring the debounce window.

        With ``blocking=True`` waits for any in-flight sync of the folder;
        otherwise returns ``SKIPPED_LOCKED`` when one is running.
        """
        lock = self._acquire(index.key, blocking=blocking)
        if lock is None:
            return SyncResult(status=SyncStatus.SKIPPED_LOCKED)
        try:
            return self.run_locked(index)
        finally:
            lock.release()

    def run_locked(self, index: FolderIndex) -> SyncResult:
        """Scan, diff and apply. Caller holds the folder lock (see :meth:`exclusive`)."""
        start = time.perf_counter()
        try:
            result = self._apply(index)
        finally:
            # Recorded even when nothing was committed or the write failed.
            self._last_sync.set(index.key, self._clock())
        result.duration_ms = int((time.perf_counter() - start) * 1000)
        if result.committed:
            logger.info(
                "Synced %s: +%d ~%d -%d files, %d lines (generation %d)",
                index.folder_path,
                result.added,
                result.changed,
                result.removed,
                result.lines_indexed,
                result.generation,
            )
        return result

    def _apply(self, index: FolderIndex) -> SyncResult:
        result = SyncResult()
        live = {f.path: f.modified_at_ms for f in scan_dated_files(index.folder_path)}
        indexed = index.indexed_files()
        delta = diff_files(live, indexed)

        result.added = len(delta.added)
        result.changed = len(delta.changed)
        result.removed = len(delta.removed)
        if delta.is_empty:
            return result

        # Read every file before opening the write transaction.
        rows: list[tuple[str, int, str, int]] = []
        for path in sorted(delta.added | delta.changed):
            content = _read_entry(path)
            if content is None:
                result.skipped.append(path)
                continue
            rows.extend(
                (path, line_number, text, live[path]) for line_number, text in split_lines(content)
            )

        delete_paths = sorted(delta.removed | delta.changed)
        if not delete_paths and not rows:
            # Only unreadable or blank new files: nothing to write.
            return result

        try:
            with index.connect() as conn:
                result.generation = _write_batch(conn, delete_paths=delete_paths, rows=rows)
        except sqlite3.Error as exc:
            msg = f"Index write failed for {index.folder_path}: {exc}"
            raise SyncError(msg) from exc
        result.lines_indexed = len(rows)
        result.committed = True
        return result


def _write_batch(
    conn: sqlite3.Connection,
    *,
    delete_paths: list[str],
    rows: list[tuple[str, int, str, int]],
) -> int:
    """Apply one sync batch as a single transaction. Returns the new generation."""
    try:
        for path in delete_paths:
            conn.execute("DELETE FROM lines WHERE file_path = ?", (path,))
        conn.executemany(
            "INSERT INTO lines (file_path, line_number, line_content, file_modified_at) "
            "VALUES (?, ?, ?, ?)",
            rows,
        )
        generation = int(get_meta(conn, "generation", "0") or 0) + 1
        set_meta(conn, "generation", str(generation), commit=False)
        set_meta(
            conn,
            "last_commit_at",
            datetime.now(tz=timezone.utc).isoformat(),
            commit=False,
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    return generation
