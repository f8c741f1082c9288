"""Tests for daybook.infrastructure.paths: folder keys and index locations."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from daybook.infrastructure.paths import folder_key, index_dir_for, normalize_folder


class TestFolderKey:
    def test_is_sha256_hex(self) -> None:
        key = folder_key("/home/me/journal")
        assert len(key) == 64
        assert all(c in "0123456789abcdef" for c in key)

    def test_stable(self) -> None:
        assert folder_key("/home/me/journal") == folder_key("/home/me/journal")
        # Known digest: must not change between releases.
        assert folder_key("") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_distinct_paths_distinct_keys(self) -> None:
        assert folder_key("/a/journal") != folder_key("/b/journal")

    def test_unicode_path(self) -> None:
        assert folder_key("/home/zoë/日記") != folder_key("/home/zoe/日記")


class TestNormalizeFolder:
    def test_relative_becomes_absolute(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        assert normalize_folder("journal") == os.path.join(str(tmp_path), "journal")

    def test_dot_segments_collapsed(self, tmp_path: Path) -> None:
        messy = f"{tmp_path}/a/../journal/"
        assert normalize_folder(messy) == str(tmp_path / "journal")

    def test_accepts_pathlike(self, tmp_path: Path) -> None:
        assert normalize_folder(tmp_path) == str(tmp_path)


class TestIndexDirFor:
    def test_layout(self, tmp_path: Path) -> None:
        key = folder_key("/j")
        assert index_dir_for(tmp_path, key) == tmp_path / "indexes" / key
