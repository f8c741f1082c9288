"""Result types shared by the sync engine, query engine and services."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any


class SortOrder(str, enum.Enum):
    """Ordering applied to search matches."""

    RELEVANCE = "relevance"
    DATE = "date"


class SyncStatus(str, enum.Enum):
    """Outcome of a sync attempt."""

    SYNCED = "synced"
    SKIPPED_LOCKED = "skipped_locked"
    SKIPPED_DEBOUNCED = "skipped_debounced"


@dataclass(frozen=True)
class SearchMatch:
    """One matching line, with highlight offsets in UTF-16 code units."""

    file_path: str
    line_number: int
    utf16_start: int
    utf16_end: int
    context_snippet: str
    score: float
    # (start, end) UTF-16 ranges of every term hit inside the snippet.
    match_ranges: tuple[tuple[int, int], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["match_ranges"] = [list(r) for r in self.match_ranges]
        return data


@dataclass(frozen=True)
class SearchResults:
    """Truncated match list plus the untruncated match count."""

    matches: list[SearchMatch]
    total_results: int
    search_time_ms: int

    @classmethod
    def empty(cls) -> SearchResults:
        return cls(matches=[], total_results=0, search_time_ms=0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "total_results": self.total_results,
            "search_time_ms": self.search_time_ms,
        }


@dataclass
class SyncResult:
    """Summary of a sync operation."""

    status: SyncStatus = SyncStatus.SYNCED
    added: int = 0
    changed: int = 0
    removed: int = 0
    lines_indexed: int = 0
    committed: bool = False
    generation: int = 0
    duration_ms: int = 0
    skipped: list[str] = field(default_factory=list)

    @property
    def nothing_changed(self) -> bool:
        return not (self.added or self.changed or self.removed)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass(frozen=True)
class IndexStatus:
    """Snapshot of one folder's index."""

    folder_path: str
    key: str
    index_dir: str
    file_count: int
    line_count: int
    generation: int
    last_commit_at: str | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
