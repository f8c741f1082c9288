"""Search domain: index store, sync engine, query engine, offsets."""

from daybook.search.engine import SearchEngine
from daybook.search.models import SearchMatch, SearchResults, SortOrder, SyncResult, SyncStatus

__all__ = [
    "SearchEngine",
    "SearchMatch",
    "SearchResults",
    "SortOrder",
    "SyncResult",
    "SyncStatus",
]
