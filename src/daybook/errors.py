"""Error types surfaced to callers of the search engine."""

from __future__ import annotations


class DaybookError(Exception):
    """Base class for all caller-facing daybook failures."""


class IndexStoreError(DaybookError):
    """The on-disk index could not be opened, created, or read."""


class SyncError(DaybookError):
    """Writing a sync batch into the index failed."""


class QueryError(DaybookError):
    """The query text was rejected by the full-text parser."""
