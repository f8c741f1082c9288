"""Query engine: tokenize, run FTS5 retrieval, order and locate matches."""

from __future__ import annotations

import logging
import re
import sqlite3
import time
import unicodedata
from dataclasses import dataclass
from typing import TYPE_CHECKING

from daybook.errors import IndexStoreError, QueryError
from daybook.infrastructure.scanner import parse_entry_date
from daybook.search.models import SearchMatch, SearchResults, SortOrder
from daybook.search.offsets import (
    DEFAULT_CONTEXT_AFTER,
    DEFAULT_CONTEXT_BEFORE,
    DEFAULT_CONTEXT_WINDOW,
    Span,
    build_snippet,
)

if TYPE_CHECKING:
    from daybook.search.store import FolderIndex

logger = logging.getLogger(__name__)

# Runs of letters, digits and combining marks, mirroring FTS5's unicode61
# token characters.
_TOKEN_RE = re.compile(
    r"(?:[^\W_]|[\u0300-\u036f\u1ab0-\u1aff\u1dc0-\u1dff\u20d0-\u20ff\ufe20-\ufe2f])+"
)

_MATCH_SQL = """\
SELECT l.file_path, l.line_number, l.line_content, bm25(lines_fts) AS rank_score
FROM lines_fts JOIN lines l ON l.id = lines_fts.rowid
WHERE lines_fts MATCH ?
ORDER BY rank_score, l.file_path, l.line_number
"""

_COUNT_SQL = "SELECT count(*) FROM lines_fts WHERE lines_fts MATCH ?"


@dataclass(frozen=True)
class QueryOptions:
    """Knobs for matching and snippet construction."""

    prefix_last_term: bool = True
    context_before: int = DEFAULT_CONTEXT_BEFORE
    context_after: int = DEFAULT_CONTEXT_AFTER
    context_window: int = DEFAULT_CONTEXT_WINDOW


def fold_case(text: str) -> str:
    """Lowercase *text* character by character, keeping its length.

    Characters whose lowercase form is longer than one character are left
    unchanged so offsets into the folded string are offsets into *text*.
    """
    folded: list[str] = []
    for ch in text:
        low = ch.lower()
        folded.append(low if len(low) == 1 else ch)
    return "".join(folded)


def tokenize_query(text: str) -> list[str]:
    """Split query text into lowercase NFC terms, dropping duplicates."""
    terms: list[str] = []
    for term in _TOKEN_RE.findall(fold_case(unicodedata.normalize("NFC", text))):
        if term not in terms:
            terms.append(term)
    return terms


def build_match_expression(terms: list[str], *, prefix_last: bool = True) -> str:
    """Build an FTS5 MATCH expression requiring every term.

    Terms are double-quoted so they are taken literally; the last term
    becomes a prefix query when *prefix_last* is set.
    """
    quoted = [f'"{term}"' for term in terms]
    if prefix_last and quoted:
        quoted[-1] += "*"
    return " ".join(quoted)


def locate_terms(line: str, terms: list[str], *, prefix_last: bool = True) -> list[Span]:
    """Find character spans of every term occurrence in *line*.

    Matching is case-insensitive and aligned to token boundaries: a term
    matches a whole token, except the last term which may match a token
    prefix (the span then covers the whole token). Spans are sorted by
    start offset.
    """
    if not terms:
        return []
    last = len(terms) - 1
    spans: list[Span] = []
    for token in _TOKEN_RE.finditer(fold_case(line)):
        word = token.group()
        for idx, term in enumerate(terms):
            if word == term or (prefix_last and idx == last and word.startswith(term)):
                spans.append(token.span())
                break
    return spans


def _date_sort_key(row: sqlite3.Row) -> tuple[int, int]:
    """Newest entry first; paths without a parseable date sort last."""
    entry_date = parse_entry_date(row["file_path"])
    if entry_date is None:
        return (1, 0)
    return (0, -entry_date.toordinal())


def _to_match(row: sqlite3.Row, terms: list[str], options: QueryOptions) -> SearchMatch:
    line: str = row["line_content"]
    spans = locate_terms(line, terms, prefix_last=options.prefix_last_term)
    anchor = spans[0] if spans else (0, 0)
    snippet = build_snippet(
        line,
        anchor,
        spans,
        before=options.context_before,
        after=options.context_after,
        window=options.context_window,
    )
    return SearchMatch(
        file_path=row["file_path"],
        line_number=int(row["line_number"]),
        utf16_start=snippet.utf16_start,
        utf16_end=snippet.utf16_end,
        context_snippet=snippet.text,
        score=-float(row["rank_score"]),
        match_ranges=snippet.match_ranges,
    )


def run_query(
    index: FolderIndex,
    query_text: str,
    *,
    limit: int,
    order: SortOrder = SortOrder.RELEVANCE,
    options: QueryOptions | None = None,
) -> SearchResults:
    """Search *index* and return at most *limit* matches.

    ``total_results`` counts every matching line before truncation. Empty
    or all-punctuation queries, and ``limit == 0``, return empty results.
    """
    start = time.perf_counter()
    opts = options or QueryOptions()
    terms = tokenize_query(query_text)
    if not terms or limit <= 0:
        return SearchResults.empty()

    expression = build_match_expression(terms, prefix_last=opts.prefix_last_term)
    try:
        with index.connect() as conn:
            # One read transaction so the count and rows see the same generation.
            conn.execute("BEGIN")
            try:
                total = conn.execute(_COUNT_SQL, (expression,)).fetchone()[0]
                if order is SortOrder.RELEVANCE:
                    rows = conn.execute(_MATCH_SQL + "LIMIT ?", (expression, limit)).fetchall()
                else:
                    rows = conn.execute(_MATCH_SQL, (expression,)).fetchall()
            finally:
                conn.rollback()
    except sqlite3.OperationalError as exc:
        text = str(exc)
        if "fts5" in text or "MATCH" in text:
            msg = f"Invalid query {query_text!r}: {text}"
            raise QueryError(msg) from exc
        msg = f"Query failed on index for {index.folder_path}: {text}"
        raise IndexStoreError(msg) from exc
    except sqlite3.Error as exc:
        msg = f"Query failed on index for {index.folder_path}: {exc}"
        raise IndexStoreError(msg) from exc

    if order is SortOrder.DATE:
        # Stable sort keeps relevance order within one day.
        rows = sorted(rows, key=_date_sort_key)[:limit]
    matches = [_to_match(row, terms, opts) for row in rows]

    elapsed_ms = int((time.perf_counter() - start) * 1000)
    logger.debug(
        "Query %r on %s: %d of %d matches in %dms",
        query_text,
        index.folder_path,
        len(matches),
        total,
        elapsed_ms,
    )
    return SearchResults(matches=matches, total_results=int(total), search_time_ms=elapsed_ms)
