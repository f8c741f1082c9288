"""Daybook CLI entry point."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from daybook import __version__
from daybook.errors import DaybookError
from daybook.infrastructure.config import DaybookConfig, load_config
from daybook.infrastructure.logs import configure_logging
from daybook.search.models import SortOrder

_FOLDER_OPTION = click.option(
    "--folder",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Journal folder (default: current directory).",
)


def _config(ctx: click.Context) -> DaybookConfig:
    config: DaybookConfig = ctx.obj["config"]
    return config


def _fail(exc: Exception) -> None:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="daybook")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    envvar="DAYBOOK_DATA_DIR",
    help="Where indexes and config.yml live (default: platform app dir).",
)
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool, data_dir: Path | None) -> None:
    """Daybook - incremental search over dated journal folders."""
    configure_logging(verbose=verbose, quiet=quiet)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config"] = load_config(data_dir)


@main.command()
@click.argument("query")
@_FOLDER_OPTION
@click.option("--limit", default=None, type=click.IntRange(min=0), help="Max results.")
@click.option(
    "--order",
    type=click.Choice([o.value for o in SortOrder]),
    default=SortOrder.RELEVANCE.value,
    help="Rank by relevance or list newest entries first.",
)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def search(
    ctx: click.Context,
    query: str,
    *,
    folder: Path | None,
    limit: int | None,
    order: str,
    output_json: bool,
) -> None:
    """Search journal entries by keyword.

    Every term must appear in a line; the last term also matches word
    prefixes. The folder index is created and refreshed automatically.
    """
    from daybook.search.engine import SearchEngine

    folder_path = folder or Path.cwd()
    try:
        with SearchEngine(_config(ctx)) as engine:
            results = engine.search(folder_path, query, limit=limit, order=SortOrder(order))
    except DaybookError as exc:
        _fail(exc)
        return

    if output_json:
        click.echo(json.dumps(results.to_dict(), ensure_ascii=False, indent=2))
        return

    if not results.matches:
        click.echo("No results found.")
        return

    root = Path(folder_path).resolve()
    for m in results.matches:
        try:
            shown = Path(m.file_path).relative_to(root)
        except ValueError:
            shown = Path(m.file_path)
        click.echo(f"  {shown}:{m.line_number}  ({m.score:.2f})")
        click.echo(f"    {m.context_snippet}")
    if not ctx.obj.get("quiet"):
        click.echo(
            f"{len(results.matches)} of {results.total_results} matches "
            f"in {results.search_time_ms}ms"
        )


@main.command()
@_FOLDER_OPTION
@click.pass_context
def rebuild(ctx: click.Context, *, folder: Path | None) -> None:
    """Delete and fully rebuild the index for a folder."""
    from daybook.search.engine import SearchEngine

    folder_path = folder or Path.cwd()
    try:
        with SearchEngine(_config(ctx)) as engine:
            result = engine.rebuild_index(folder_path)
    except DaybookError as exc:
        _fail(exc)
        return

    click.echo(
        f"Rebuilt index: {result.added} files, {result.lines_indexed} lines "
        f"in {result.duration_ms}ms"
    )
    for path in result.skipped:
        click.echo(f"  skipped unreadable file: {path}", err=True)


@main.command()
@_FOLDER_OPTION
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, *, folder: Path | None, output_json: bool) -> None:
    """Show index statistics for a folder."""
    from daybook.search.engine import SearchEngine

    folder_path = folder or Path.cwd()
    try:
        with SearchEngine(_config(ctx)) as engine:
            info = engine.status(folder_path)
    except DaybookError as exc:
        _fail(exc)
        return

    if output_json:
        click.echo(json.dumps(info.to_dict(), ensure_ascii=False, indent=2))
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(title=f"daybook index: {info.folder_path}", show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Files", str(info.file_count))
    table.add_row("Lines", str(info.line_count))
    table.add_row("Generation", str(info.generation))
    table.add_row("Last commit", info.last_commit_at or "never")
    table.add_row("Index dir", info.index_dir)
    Console().print(table)


@main.command("watch")
@_FOLDER_OPTION
@click.option(
    "--debounce",
    default=None,
    type=click.IntRange(min=0),
    help="Debounce delay in milliseconds (default from config, 500).",
)
@click.pass_context
def watch_cmd(ctx: click.Context, *, folder: Path | None, debounce: int | None) -> None:
    """Watch a folder and keep its index in sync.

    Requires watchfiles: pip install daybook[watch]
    """
    try:
        from daybook.infrastructure.watcher import watch
    except ImportError:
        click.echo(
            "Error: watch requires 'watchfiles'. Install with: pip install daybook[watch]",
            err=True,
        )
        sys.exit(1)

    from daybook.search.engine import SearchEngine

    config = _config(ctx)
    folder_path = folder or Path.cwd()
    try:
        with SearchEngine(config) as engine:
            watch(
                engine,
                folder_path,
                debounce_ms=config.watch_debounce_ms if debounce is None else debounce,
            )
    except ImportError:
        click.echo(
            "Error: watch requires 'watchfiles'. Install with: pip install daybook[watch]",
            err=True,
        )
        sys.exit(1)
    except DaybookError as exc:
        _fail(exc)


@main.command("mcp-serve")
@click.pass_context
def mcp_serve(ctx: click.Context) -> None:
    """Run the daybook MCP server (stdio transport)."""
    import anyio

    from daybook.search.engine import SearchEngine
    from daybook.services.mcp_server import create_server

    engine = SearchEngine(_config(ctx))
    server = create_server(engine)

    async def _run() -> None:
        from mcp import stdio_server

        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )

    try:
        anyio.run(_run)
    finally:
        engine.close()
