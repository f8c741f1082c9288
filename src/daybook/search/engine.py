"""Search engine facade: owns the index cache and sync tables for a process."""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING

from daybook.errors import DaybookError, IndexStoreError, SyncError
from daybook.infrastructure.paths import folder_key, normalize_folder
from daybook.search.models import IndexStatus, SearchResults, SortOrder, SyncResult
from daybook.search.query import QueryOptions, run_query, tokenize_query
from daybook.search.store import FolderIndex, IndexStore
from daybook.search.sync import SyncEngine

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from daybook.infrastructure.config import DaybookConfig

logger = logging.getLogger(__name__)


class SearchEngine:
    """Folder-scoped incremental search.

    One instance per process: construct at startup, pass it to whoever
    serves requests, call :meth:`close` at shutdown. All methods are safe to
    call from any number of worker threads.
    """

    def __init__(
        self,
        config: DaybookConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._store = IndexStore(config.data_dir)
        self._sync = SyncEngine(debounce_seconds=config.debounce_seconds, clock=clock)
        self._options = QueryOptions(
            prefix_last_term=config.prefix_last_term,
            context_before=config.context_before,
            context_after=config.context_after,
            context_window=config.context_window,
        )

    @property
    def config(self) -> DaybookConfig:
        return self._config

    @property
    def store(self) -> IndexStore:
        return self._store

    @property
    def sync_engine(self) -> SyncEngine:
        return self._sync

    def __enter__(self) -> SearchEngine:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Drop every cached handle and lock entry."""
        self._store.clear()
        self._sync.clear()

    def open_index(self, folder_path: str | os.PathLike[str]) -> FolderIndex:
        """Return the shared index handle for *folder_path*."""
        return self._store.get_or_create(normalize_folder(folder_path))

    def search(
        self,
        folder_path: str | os.PathLike[str],
        query: str,
        limit: int | None = None,
        order: SortOrder | str = SortOrder.RELEVANCE,
    ) -> SearchResults:
        """Search a folder, freshening its index first when possible.

        The opportunistic sync never waits for another sync of the folder.
        If it fails the error is logged and the query runs against the last
        committed index state. Queries with no terms, and a zero limit,
        return empty results without touching the folder or its index.
        """
        order = SortOrder(order)
        effective_limit = self._config.default_limit if limit is None else limit
        if effective_limit < 0:
            msg = f"limit must be non-negative, got {effective_limit}"
            raise ValueError(msg)
        if effective_limit == 0 or not tokenize_query(query):
            return SearchResults.empty()

        index = self.open_index(folder_path)
        try:
            self._sync.maybe_sync(index)
        except (SyncError, IndexStoreError) as exc:
            logger.warning("Sync before search failed for %s: %s", index.folder_path, exc)

        return run_query(
            index,
            query,
            limit=effective_limit,
            order=order,
            options=self._options,
        )

    def sync_folder(
        self,
        folder_path: str | os.PathLike[str],
        *,
        force: bool = False,
    ) -> SyncResult:
        """Sync a folder now.

        ``force=False`` behaves like the opportunistic pre-search sync.
        ``force=True`` ignores the debounce window and waits for the lock.
        """
        index = self.open_index(folder_path)
        if force:
            return self._sync.sync_now(index, blocking=True)
        return self._sync.maybe_sync(index)

    def rebuild_index(self, folder_path: str | os.PathLike[str]) -> SyncResult:
        """Delete and fully repopulate the index for *folder_path*.

        Blocks until the new index is complete. The folder's sync lock is
        held throughout, so no other sync of the folder can interleave with
        the delete and the full resync. On failure no cache entry is left
        behind, so the next call starts from scratch.
        """
        normalized = normalize_folder(folder_path)
        key = folder_key(normalized)

        with self._sync.exclusive(key):
            self._store.evict(normalized)
            self._store.destroy(normalized)
            try:
                index = self._store.get_or_create(normalized)
                result = self._sync.run_locked(index)
            except DaybookError:
                self._store.evict(normalized)
                raise
        logger.info(
            "Rebuilt index for %s: %d files, %d lines",
            normalized,
            result.added,
            result.lines_indexed,
        )
        return result

    def status(self, folder_path: str | os.PathLike[str]) -> IndexStatus:
        """Report counts and commit metadata for a folder's index."""
        return self.open_index(folder_path).status()
