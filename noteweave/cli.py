"""Command line interface for noteweave."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Awaitable, Sequence, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .api import Connections, check_api_key
from .config import (
    load_config,
    resolve_api_key,
    set_api_key,
    set_base_url,
    set_model,
    set_results_count,
    update_config_from_json,
)
from .embedding import create_backend
from .errors import ConnectionsError, NoteweaveError
from .indexer import RunReport
from .logging_setup import setup_logging
from .nearest import Neighbor
from .output import format_status_icon, render_link_text, render_neighbor
from .segmenter import retrieve_block
from .sources import VaultSource
from .text import Messages, Styles

T = TypeVar("T")

app = typer.Typer(
    help=Messages.APP_HELP,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"noteweave v{__version__}")
        raise typer.Exit()


def _parse_boolean(value: str) -> bool:
    token = value.strip().lower()
    if token in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if token in {"0", "false", "f", "no", "n", "off"}:
        return False
    raise typer.BadParameter(Messages.ERROR_BOOLEAN_INVALID.format(value=value))


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]"


def _run(awaitable: Awaitable[T]) -> T:
    try:
        return asyncio.run(awaitable)
    except (NoteweaveError, OSError) as exc:
        console.print(_styled(str(exc), Styles.ERROR))
        raise typer.Exit(code=1)


def _vault_relative(note: str, vault: Path) -> str:
    candidate = Path(note).expanduser()
    if candidate.is_absolute():
        try:
            return candidate.resolve().relative_to(vault).as_posix()
        except ValueError as exc:
            raise ConnectionsError(Messages.ERROR_NOTE_MISSING.format(path=note)) from exc
    return candidate.as_posix()


def _plural(count: int, one: str, many: str) -> str:
    return one if count == 1 else many


def _render_report(report: RunReport) -> None:
    failed = len(report.failed_embeddings)
    summary = Messages.INFO_INDEX_SUMMARY.format(
        new=report.new_embeddings,
        plural=_plural(report.new_embeddings, "", "s"),
        deleted=report.deleted_embeddings,
        deleted_plural=_plural(report.deleted_embeddings, "y", "ies"),
        failed=failed,
        failed_plural=_plural(failed, "", "s"),
    )
    console.print(_styled(summary, Styles.SUCCESS if not failed else Styles.WARNING))


def _render_neighbors(neighbors: Sequence[Neighbor], context: str, show_full_path: bool) -> None:
    if not neighbors:
        console.print(_styled(Messages.INFO_NO_RESULTS, Styles.WARNING))
        return
    console.print(_styled(Messages.TABLE_TITLE.format(context=context), Styles.TITLE))
    table = Table(show_header=True, header_style=Styles.TABLE_HEADER)
    table.add_column(Messages.TABLE_HEADER_INDEX, justify="right")
    table.add_column(Messages.TABLE_HEADER_SIMILARITY, justify="right")
    table.add_column(Messages.TABLE_HEADER_LINK, overflow="fold")
    for idx, neighbor in enumerate(neighbors, start=1):
        table.add_row(
            str(idx),
            f"{neighbor.similarity:.3f}",
            render_neighbor(neighbor, show_full_path, console),
        )
    console.print(table)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help=Messages.HELP_VERSION,
    ),
    verbose: bool = typer.Option(False, "--verbose", help=Messages.HELP_VERBOSE),
) -> None:
    """Global Typer callback for shared options."""
    setup_logging(verbose)


@app.command()
def index(
    path: Path = typer.Option(Path.cwd(), "--path", "-p", help=Messages.HELP_VAULT),
    retry_failed: bool = typer.Option(False, "--retry-failed", help=Messages.HELP_INDEX_RETRY),
    force_refresh: bool = typer.Option(False, "--force-refresh", help=Messages.HELP_INDEX_FORCE),
) -> None:
    """Embed new and changed notes of a vault."""

    async def _index() -> RunReport:
        connections = await Connections.open_vault(path)
        if force_refresh:
            return await connections.force_refresh()
        if retry_failed:
            if not connections.store.failed_paths:
                console.print(_styled(Messages.INFO_RETRY_NONE, Styles.INFO))
            return await connections.retry_failed()
        return await connections.embed_all()

    console.print(_styled(Messages.INFO_INDEX_RUNNING.format(path=path), Styles.INFO))
    report = _run(_index())
    _render_report(report)
    if force_refresh:
        console.print(_styled(Messages.INFO_INDEX_FORCED, Styles.SUCCESS))


@app.command()
def related(
    note: str = typer.Argument(..., help=Messages.HELP_RELATED_NOTE),
    path: Path = typer.Option(Path.cwd(), "--path", "-p", help=Messages.HELP_VAULT),
) -> None:
    """Show the notes and sections most similar to NOTE."""

    config = load_config()

    async def _related() -> list[Neighbor]:
        source = VaultSource(path)
        rel_path = _vault_relative(note, source.root)
        document = await source.get_document(rel_path)
        if document is None:
            raise ConnectionsError(Messages.ERROR_NOTE_MISSING.format(path=rel_path))
        connections = await Connections.open_vault(source.root, config=config)
        return await connections.find_connections(document)

    neighbors = _run(_related())
    context = render_link_text(note, config.show_full_path)
    _render_neighbors(neighbors, context, config.show_full_path)


@app.command()
def search(
    text: str = typer.Argument(..., help=Messages.HELP_SEARCH_TEXT),
    path: Path = typer.Option(Path.cwd(), "--path", "-p", help=Messages.HELP_VAULT),
) -> None:
    """Rank the indexed notes against free TEXT."""

    clean_text = text.strip()
    if not clean_text:
        console.print(_styled(Messages.ERROR_EMPTY_QUERY, Styles.ERROR))
        raise typer.Exit(code=1)
    config = load_config()

    async def _search() -> list[Neighbor]:
        connections = await Connections.open_vault(path, config=config)
        return await connections.search(clean_text)

    neighbors = _run(_search())
    _render_neighbors(neighbors, f'"{clean_text}"', config.show_full_path)


@app.command()
def block(
    block_path: str = typer.Argument(..., metavar="BLOCK", help=Messages.HELP_BLOCK_PATH),
    path: Path = typer.Option(Path.cwd(), "--path", "-p", help=Messages.HELP_VAULT),
    limit: int | None = typer.Option(None, "--limit", "-n", min=0, help=Messages.HELP_BLOCK_LIMIT),
) -> None:
    """Print the body of the section addressed by BLOCK."""

    async def _block() -> str | None:
        source = VaultSource(path)
        document = await source.get_document(block_path.split("#")[0])
        if document is None:
            return None
        return retrieve_block(await source.read(document), block_path, limit)

    body = _run(_block())
    if body is None:
        console.print(_styled(Messages.ERROR_BLOCK_MISSING.format(path=block_path), Styles.ERROR))
        raise typer.Exit(code=1)
    typer.echo(body)


@app.command()
def config(
    set_api_key_option: str | None = typer.Option(None, "--set-api-key", help=Messages.HELP_SET_API_KEY),
    clear_api_key: bool = typer.Option(False, "--clear-api-key", help=Messages.HELP_CLEAR_API_KEY),
    set_model_option: str | None = typer.Option(None, "--set-model", help=Messages.HELP_SET_MODEL),
    set_base_url_option: str | None = typer.Option(None, "--set-base-url", help=Messages.HELP_SET_BASE_URL),
    set_results_option: int | None = typer.Option(None, "--set-results", help=Messages.HELP_SET_RESULTS),
    set_file_exclusions: str | None = typer.Option(
        None, "--set-file-exclusions", help=Messages.HELP_SET_FILE_EXCLUSIONS
    ),
    set_folder_exclusions: str | None = typer.Option(
        None, "--set-folder-exclusions", help=Messages.HELP_SET_FOLDER_EXCLUSIONS
    ),
    set_header_exclusions: str | None = typer.Option(
        None, "--set-header-exclusions", help=Messages.HELP_SET_HEADER_EXCLUSIONS
    ),
    set_path_only: str | None = typer.Option(None, "--set-path-only", help=Messages.HELP_SET_PATH_ONLY),
    set_skip_sections: str | None = typer.Option(
        None, "--set-skip-sections", help=Messages.HELP_SET_SKIP_SECTIONS
    ),
    set_full_path: str | None = typer.Option(None, "--set-full-path", help=Messages.HELP_SET_FULL_PATH),
    set_log_render: str | None = typer.Option(None, "--set-log-render", help=Messages.HELP_SET_LOG_RENDER),
    set_log_render_files: str | None = typer.Option(
        None, "--set-log-render-files", help=Messages.HELP_SET_LOG_RENDER_FILES
    ),
    test_api_key: bool = typer.Option(False, "--test-api-key", help=Messages.HELP_TEST_API_KEY),
    show: bool = typer.Option(False, "--show", help=Messages.HELP_SHOW_CONFIG),
) -> None:
    """Manage noteweave settings stored in ~/.noteweave/config.json."""

    changed = False
    updated = False
    if set_api_key_option is not None:
        set_api_key(set_api_key_option)
        console.print(_styled(Messages.INFO_API_SAVED, Styles.SUCCESS))
        changed = True
    if clear_api_key:
        set_api_key(None)
        console.print(_styled(Messages.INFO_API_CLEARED, Styles.SUCCESS))
        changed = True
    if set_model_option is not None:
        set_model(set_model_option)
        updated = True
    if set_base_url_option is not None:
        set_base_url(set_base_url_option or None)
        updated = True
    if set_results_option is not None:
        try:
            set_results_count(set_results_option)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        updated = True

    updates: dict[str, object] = {}
    for field_name, value in (
        ("file_exclusions", set_file_exclusions),
        ("folder_exclusions", set_folder_exclusions),
        ("header_exclusions", set_header_exclusions),
        ("path_only", set_path_only),
    ):
        if value is not None:
            updates[field_name] = value
    for field_name, value in (
        ("skip_sections", set_skip_sections),
        ("show_full_path", set_full_path),
        ("log_render", set_log_render),
        ("log_render_files", set_log_render_files),
    ):
        if value is not None:
            updates[field_name] = _parse_boolean(value)
    if updates:
        update_config_from_json(updates)
        updated = True
    if updated:
        changed = True
        console.print(_styled(Messages.INFO_CONFIG_UPDATED, Styles.SUCCESS))

    if test_api_key:
        current = load_config()

        async def _check() -> bool:
            return await check_api_key(create_backend(current))

        passed = _run(_check())
        message = Messages.INFO_API_VALID if passed else Messages.INFO_API_INVALID
        console.print(f"{format_status_icon(passed, console)} {message}")
        if not passed:
            raise typer.Exit(code=1)

    if show or not (changed or test_api_key):
        current = load_config()
        console.print(
            _styled(
                Messages.INFO_CONFIG_SUMMARY.format(
                    api="yes" if resolve_api_key(current.api_key) else "no",
                    model=current.model,
                    base_url=current.base_url or "-",
                    results=current.results_count,
                    skip_sections=current.skip_sections,
                    file_exclusions=current.file_exclusions or "-",
                    folder_exclusions=current.folder_exclusions or "-",
                    header_exclusions=current.header_exclusions or "-",
                    path_only=current.path_only or "-",
                    show_full_path=current.show_full_path,
                    log_render=current.log_render,
                    log_render_files=current.log_render_files,
                ),
                Styles.INFO,
            )
        )


def run(argv: list[str] | None = None) -> None:
    """Entry point wrapper allowing optional argument override."""
    args = list(argv) if argv is not None else sys.argv[1:]
    app(args=args, prog_name="noteweave")
