"""Folder watcher: sync the index as journal files change on disk."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from daybook.infrastructure.paths import normalize_folder
from daybook.infrastructure.scanner import is_dated_entry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from daybook.search.engine import SearchEngine

DEFAULT_DEBOUNCE_MS = 500


def _filter_relevant(
    changes: Iterable[tuple[object, str]],
    folder: Path,
) -> list[tuple[object, str]]:
    """Keep only changes to dated journal files inside *folder*."""
    result: list[tuple[object, str]] = []

    for change_type, path_str in changes:
        p = Path(path_str)
        if not is_dated_entry(p.name):
            continue
        try:
            p.relative_to(folder)
        except ValueError:
            continue
        result.append((change_type, path_str))

    return result


def _format_time() -> str:
    """Return current time as ``HH:MM:SS`` string."""
    return datetime.now(tz=timezone.utc).strftime("%H:%M:%S")


@dataclass(frozen=True)
class WatchEvent:
    """A single watch event after filtering and debounce."""

    files_changed: int
    lines_indexed: int
    generation: int


def watch(
    engine: SearchEngine,
    folder: Path,
    debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    callback: Callable[[WatchEvent], None] | None = None,
) -> None:
    """Watch *folder* and sync its index after each batch of changes.

    Requires ``watchfiles`` (optional dependency).
    """
    from rich.console import Console
    from watchfiles import watch as fs_watch

    console = Console()
    folder = Path(normalize_folder(folder))

    if not folder.is_dir():
        console.print(f"[red]Not a directory: {folder}[/red]")
        return

    initial = engine.sync_folder(folder, force=True)
    console.print(f"[bold blue]Watching:[/bold blue] {folder}")
    console.print(
        f"[dim]Indexed {initial.lines_indexed} new lines  |  "
        f"Debounce: {debounce_ms}ms  |  Press Ctrl+C to stop[/dim]"
    )
    console.print()

    try:
        for batch in fs_watch(folder, debounce=debounce_ms):
            relevant = _filter_relevant(batch, folder)
            if not relevant:
                continue

            result = engine.sync_folder(folder, force=True)

            timestamp = _format_time()
            console.print(
                f"[dim]{timestamp}[/dim] "
                f"[green]synced[/green] "
                f"({len(relevant)} file{'s' if len(relevant) != 1 else ''} changed, "
                f"{result.lines_indexed} lines indexed)"
            )

            if callback is not None:
                callback(
                    WatchEvent(
                        files_changed=len(relevant),
                        lines_indexed=result.lines_indexed,
                        generation=result.generation,
                    )
                )

    except KeyboardInterrupt:
        console.print("\n[yellow]Watch stopped.[/yellow]")
