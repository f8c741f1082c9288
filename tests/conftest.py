"""Shared test fixtures for daybook."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from daybook.infrastructure.config import DaybookConfig
from daybook.search.engine import SearchEngine

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


class FakeClock:
    """Monotonic clock stand-in that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def write_entry(folder: Path, name: str, text: str, *, mtime_ms: int | None = None) -> Path:
    """Write a journal file, optionally pinning its modification time."""
    path = folder / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    if mtime_ms is not None:
        ns = mtime_ms * 1_000_000
        os.utime(path, ns=(ns, ns))
    return path


@pytest.fixture()
def journal(tmp_path: Path) -> Path:
    """A journal folder with two dated entries and some noise."""
    folder = tmp_path / "journal"
    folder.mkdir()
    write_entry(folder, "2024-01-01.md", "# Monday\n\nMet Alice for coffee in Paris\n", mtime_ms=1_000)
    write_entry(folder, "2024-01-05.md", "Alice called about Paris trip\n", mtime_ms=2_000)
    write_entry(folder, "notes.md", "Alice Paris but not a dated entry\n")
    write_entry(folder, "2024-02-30.md", "Alice Paris on an impossible day\n")
    return folder


@pytest.fixture()
def config(tmp_path: Path) -> DaybookConfig:
    return DaybookConfig(data_dir=tmp_path / "data")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine(config: DaybookConfig, clock: FakeClock) -> Iterator[SearchEngine]:
    with SearchEngine(config, clock=clock) as eng:
        yield eng


@pytest.fixture()
def add_entry() -> Callable[..., Path]:
    """Return :func:`write_entry` for tests that create files mid-test."""
    return write_entry
