"""Index store: per-folder FTS5 databases and the process-wide handle cache."""

from __future__ import annotations

import contextlib
import logging
import shutil
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from daybook.errors import IndexStoreError
from daybook.infrastructure.db import SCHEMA_VERSION, create_schema, get_meta, open_db, set_meta
from daybook.infrastructure.paths import FolderKey, folder_key, index_dir_for
from daybook.search.models import IndexStatus
from daybook.search.registry import KeyedRegistry

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger = logging.getLogger(__name__)

INDEX_DB_NAME = "index.db"


@dataclass(frozen=True)
class FolderIndex:
    """Handle to one folder's on-disk index.

    Holds no open connection; every operation opens its own, so a single
    handle can be shared by any number of worker threads.
    """

    folder_path: str
    key: FolderKey
    index_dir: Path

    @property
    def db_path(self) -> Path:
        return self.index_dir / INDEX_DB_NAME

    @contextlib.contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection to the existing index database."""
        try:
            conn = open_db(self.db_path, create=False)
        except sqlite3.Error as exc:
            msg = f"Cannot open index for {self.folder_path}: {exc}"
            raise IndexStoreError(msg) from exc
        try:
            yield conn
        finally:
            conn.close()

    def indexed_files(self) -> dict[str, int]:
        """Return ``{file_path: modified_at_ms}`` as recorded in the index."""
        try:
            with self.connect() as conn:
                rows = conn.execute(
                    "SELECT file_path, MAX(file_modified_at) AS modified_at "
                    "FROM lines GROUP BY file_path"
                ).fetchall()
        except sqlite3.Error as exc:
            msg = f"Cannot read sync state for {self.folder_path}: {exc}"
            raise IndexStoreError(msg) from exc
        return {row["file_path"]: int(row["modified_at"]) for row in rows}

    def status(self) -> IndexStatus:
        """Collect counts and commit metadata for this index."""
        try:
            with self.connect() as conn:
                line_count = conn.execute("SELECT count(*) FROM lines").fetchone()[0]
                file_count = conn.execute(
                    "SELECT count(DISTINCT file_path) FROM lines"
                ).fetchone()[0]
                generation = int(get_meta(conn, "generation", "0") or 0)
                last_commit_at = get_meta(conn, "last_commit_at")
        except sqlite3.Error as exc:
            msg = f"Cannot read index status for {self.folder_path}: {exc}"
            raise IndexStoreError(msg) from exc
        return IndexStatus(
            folder_path=self.folder_path,
            key=self.key,
            index_dir=str(self.index_dir),
            file_count=file_count,
            line_count=line_count,
            generation=generation,
            last_commit_at=last_commit_at,
        )


def _initialize(index: FolderIndex) -> None:
    """Create or validate the on-disk index behind *index*."""
    try:
        index.index_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        msg = f"Cannot create index directory {index.index_dir}: {exc}"
        raise IndexStoreError(msg) from exc

    try:
        conn = open_db(index.db_path)
        try:
            create_schema(conn)
            stored = get_meta(conn, "schema_version")
            if stored is not None and stored != SCHEMA_VERSION:
                msg = (
                    f"Index for {index.folder_path} has schema version {stored}, "
                    f"expected {SCHEMA_VERSION}. Rebuild the index."
                )
                raise IndexStoreError(msg)
            if stored is None:
                now = datetime.now(tz=timezone.utc).isoformat()
                set_meta(conn, "schema_version", SCHEMA_VERSION, commit=False)
                set_meta(conn, "folder_path", index.folder_path, commit=False)
                set_meta(conn, "created_at", now, commit=False)
                set_meta(conn, "generation", "0", commit=False)
                conn.commit()
                logger.info("Created index for %s at %s", index.folder_path, index.index_dir)
        finally:
            conn.close()
    except sqlite3.Error as exc:
        msg = f"Cannot initialize index for {index.folder_path}: {exc}"
        raise IndexStoreError(msg) from exc


class IndexStore:
    """Process-wide cache of folder index handles, keyed by folder hash."""

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._cache: KeyedRegistry[FolderIndex] = KeyedRegistry()
        self._init_locks: KeyedRegistry[threading.Lock] = KeyedRegistry()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def get_or_create(self, folder_path: str) -> FolderIndex:
        """Return the shared handle for *folder_path*, creating the index if needed.

        Creation is serialized per key, so concurrent first calls for one
        folder initialize a single on-disk index.
        """
        key = folder_key(folder_path)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        init_lock = self._init_locks.get_or_insert(key, threading.Lock)
        with init_lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            index = FolderIndex(
                folder_path=folder_path,
                key=key,
                index_dir=index_dir_for(self._data_dir, key),
            )
            _initialize(index)
            self._cache.set(key, index)
            return index

    def evict(self, folder_path: str) -> FolderIndex | None:
        """Drop the cached handle for *folder_path* (no disk I/O)."""
        return self._cache.pop(folder_key(folder_path))

    def destroy(self, folder_path: str) -> None:
        """Evict *folder_path* and delete its on-disk index tree."""
        key = folder_key(folder_path)
        self._cache.pop(key)
        index_dir = index_dir_for(self._data_dir, key)
        if not index_dir.exists():
            return
        try:
            shutil.rmtree(index_dir)
        except OSError as exc:
            msg = f"Cannot delete index directory {index_dir}: {exc}"
            raise IndexStoreError(msg) from exc
        logger.info("Deleted index for %s", folder_path)

    def cached_keys(self) -> list[FolderKey]:
        return self._cache.keys()

    def clear(self) -> None:
        """Forget every cached handle (used at engine shutdown)."""
        self._cache.clear()
        self._init_locks.clear()
