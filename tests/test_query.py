"""Tests for daybook.search.query: tokenizing, matching, ordering."""

from __future__ import annotations

import unicodedata
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from daybook.errors import QueryError
from daybook.search.models import SortOrder
from daybook.search.query import (
    QueryOptions,
    build_match_expression,
    fold_case,
    locate_terms,
    run_query,
    tokenize_query,
)
from daybook.search.store import FolderIndex, IndexStore
from daybook.search.sync import SyncEngine

if TYPE_CHECKING:
    from collections.abc import Callable


@pytest.fixture()
def index(tmp_path: Path, journal: Path) -> FolderIndex:
    idx = IndexStore(tmp_path / "data").get_or_create(str(journal))
    SyncEngine().sync_now(idx)
    return idx


def _insert(index: FolderIndex, rows: list[tuple[str, int, str]]) -> None:
    with index.connect() as conn:
        conn.executemany(
            "INSERT INTO lines (file_path, line_number, line_content, file_modified_at) "
            "VALUES (?, ?, ?, 0)",
            rows,
        )
        conn.commit()


class TestTokenizeQuery:
    def test_lowercases_and_splits_on_punctuation(self) -> None:
        assert tokenize_query("Alice, PARIS!") == ["alice", "paris"]

    def test_drops_duplicates(self) -> None:
        assert tokenize_query("paris Paris PARIS alice") == ["paris", "alice"]

    def test_underscore_separates(self) -> None:
        assert tokenize_query("snake_case") == ["snake", "case"]

    def test_unicode_letters(self) -> None:
        assert tokenize_query("Café Zürich 東京") == ["café", "zürich", "東京"]

    def test_decomposed_accents_compose(self) -> None:
        assert tokenize_query(unicodedata.normalize("NFD", "Café noir")) == ["café", "noir"]

    def test_combining_mark_stays_in_token(self) -> None:
        assert tokenize_query("x\u0332y z") == ["x\u0332y", "z"]

    def test_zero_terms(self) -> None:
        assert tokenize_query("") == []
        assert tokenize_query("   ") == []
        assert tokenize_query("?!... -- \"\"") == []


class TestFoldCase:
    def test_keeps_length(self) -> None:
        text = "İstanbul ẞ ÅNGSTRÖM"
        assert len(fold_case(text)) == len(text)
        assert fold_case("ÅNGSTRÖM") == "ångström"


class TestBuildMatchExpression:
    def test_quotes_and_prefixes_last(self) -> None:
        assert build_match_expression(["alice", "par"]) == '"alice" "par"*'

    def test_without_prefix(self) -> None:
        assert build_match_expression(["alice", "paris"], prefix_last=False) == '"alice" "paris"'


class TestLocateTerms:
    def test_case_insensitive_all_occurrences(self) -> None:
        assert locate_terms("Alice met ALICE", ["alice"]) == [(0, 5), (10, 15)]

    def test_last_term_prefix_covers_whole_word(self) -> None:
        assert locate_terms("Parisian nights", ["paris"]) == [(0, 8)]

    def test_non_last_terms_exact(self) -> None:
        assert locate_terms("Parisian Alice", ["paris", "alice"]) == [(9, 14)]

    def test_prefix_disabled(self) -> None:
        assert locate_terms("Parisian nights", ["paris"], prefix_last=False) == []

    def test_sorted_by_offset(self) -> None:
        spans = locate_terms("Paris then Alice then paris", ["alice", "paris"])
        assert spans == [(0, 5), (11, 16), (22, 27)]

    def test_emoji_line(self) -> None:
        assert locate_terms("🎉 party with Alice", ["alice"]) == [(13, 18)]


class TestRunQuery:
    def test_and_semantics(self, index: FolderIndex) -> None:
        results = run_query(index, "alice coffee", limit=10)
        assert results.total_results == 1
        (match,) = results.matches
        assert Path(match.file_path).name == "2024-01-01.md"
        assert match.line_number == 3

    def test_alice_paris_relevance(self, index: FolderIndex) -> None:
        results = run_query(index, "alice paris", limit=10)
        assert results.total_results == 2
        assert {Path(m.file_path).name for m in results.matches} == {
            "2024-01-01.md",
            "2024-01-05.md",
        }
        assert all(m.score > 0 for m in results.matches)
        scores = [m.score for m in results.matches]
        assert scores == sorted(scores, reverse=True)

    def test_alice_paris_date_order(self, index: FolderIndex) -> None:
        results = run_query(index, "alice paris", limit=10, order=SortOrder.DATE)
        assert [Path(m.file_path).name for m in results.matches] == [
            "2024-01-05.md",
            "2024-01-01.md",
        ]

    def test_highlight_offsets(self, index: FolderIndex) -> None:
        (match,) = run_query(index, "coffee", limit=10).matches
        assert match.context_snippet == "Met Alice for coffee in Paris"
        assert match.context_snippet[match.utf16_start : match.utf16_end] == "coffee"

    def test_prefix_on_last_term(self, index: FolderIndex) -> None:
        assert run_query(index, "alice cof", limit=10).total_results == 1
        assert run_query(index, "cof alice", limit=10).total_results == 0

    def test_limit_truncates_but_counts_all(self, index: FolderIndex) -> None:
        results = run_query(index, "alice", limit=1)
        assert len(results.matches) == 1
        assert results.total_results == 2

    def test_limit_zero(self, index: FolderIndex) -> None:
        results = run_query(index, "alice", limit=0)
        assert results.matches == []
        assert results.total_results == 0

    def test_no_match(self, index: FolderIndex) -> None:
        results = run_query(index, "zzzznonexistent", limit=10)
        assert results.matches == []
        assert results.total_results == 0

    @pytest.mark.parametrize("text", ["", "   ", "!!! ... ???"])
    def test_zero_term_query(self, index: FolderIndex, text: str) -> None:
        with patch.object(FolderIndex, "connect") as connect:
            results = run_query(index, text, limit=10)
        connect.assert_not_called()
        assert results.matches == []
        assert results.total_results == 0
        assert results.search_time_ms == 0

    def test_date_order_undated_last(self, index: FolderIndex, journal: Path) -> None:
        _insert(
            index,
            [
                (str(journal / "scratch.md"), 1, "alice scratch"),
                (str(journal / "2023-06-01.md"), 1, "alice in june"),
                (str(journal / "2025-01-01.md"), 1, "alice new year"),
            ],
        )
        results = run_query(index, "alice", limit=10, order=SortOrder.DATE)
        names = [Path(m.file_path).name for m in results.matches]
        assert names == [
            "2025-01-01.md",
            "2024-01-05.md",
            "2024-01-01.md",
            "2023-06-01.md",
            "scratch.md",
        ]

    def test_date_order_limit_applies_after_sort(self, index: FolderIndex) -> None:
        results = run_query(index, "alice", limit=1, order=SortOrder.DATE)
        assert [Path(m.file_path).name for m in results.matches] == ["2024-01-05.md"]
        assert results.total_results == 2

    def test_surrogate_pair_offsets(
        self, index: FolderIndex, journal: Path, add_entry: Callable[..., Path]
    ) -> None:
        add_entry(journal, "2024-02-01.md", "🎉🎉 dinner with Bob 🍷\n")
        SyncEngine().sync_now(index)
        (match,) = run_query(index, "bob", limit=10).matches
        assert (match.utf16_start, match.utf16_end) == (17, 20)
        encoded = match.context_snippet.encode("utf-16-le")
        assert encoded[2 * match.utf16_start : 2 * match.utf16_end].decode("utf-16-le") == "Bob"

    def test_match_ranges_cover_every_term(self, index: FolderIndex) -> None:
        (match,) = run_query(index, "paris alice coffee", limit=10).matches
        snippet = match.context_snippet
        words = [snippet[s:e] for s, e in match.match_ranges]
        assert words == ["Alice", "coffee", "Paris"]
        assert (match.utf16_start, match.utf16_end) == match.match_ranges[0]

    @pytest.mark.parametrize("form", ["NFD", "NFC"])
    def test_decomposed_line_found_by_its_own_text(
        self, index: FolderIndex, journal: Path, add_entry: Callable[..., Path], form: str
    ) -> None:
        text = unicodedata.normalize("NFD", "met at the café later")
        add_entry(journal, "2024-02-02.md", text + "\n")
        SyncEngine().sync_now(index)

        results = run_query(index, unicodedata.normalize(form, text), limit=10)
        assert results.total_results == 1
        (match,) = results.matches
        words = [match.context_snippet[s:e] for s, e in match.match_ranges]
        assert "café" in words

    def test_custom_context(self, index: FolderIndex, journal: Path) -> None:
        _insert(index, [(str(journal / "2024-05-05.md"), 1, "a" * 30 + " target " + "b" * 30)])
        options = QueryOptions(context_before=5, context_after=5, context_window=0)
        (match,) = run_query(index, "target", limit=10, options=options).matches
        assert match.context_snippet == "aaaa target bbbb"

    def test_malformed_expression(self, index: FolderIndex) -> None:
        with patch(
            "daybook.search.query.build_match_expression", return_value='"alice" AND'
        ), pytest.raises(QueryError):
            run_query(index, "alice", limit=10)

    def test_repeatable(self, index: FolderIndex) -> None:
        first = run_query(index, "alice paris", limit=10)
        second = run_query(index, "alice paris", limit=10)
        assert first.matches == second.matches
        assert first.total_results == second.total_results
