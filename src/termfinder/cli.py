"""Command line interface for TermFinder."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, List, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from termfinder.config import AppConfig
from termfinder.index.corpus import CorpusIndex, CorpusView
from termfinder.index.search import QueryEngine, rank_results
from termfinder.index.storage import IndexFormatError, load_index, read_index, reconcile, save_index

QUIT_COMMAND = ":quit"

console = Console()
app = typer.Typer(help="TermFinder - TF-IDF search over local documents")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_state_parent(state_path: Path) -> None:
    state_path.parent.mkdir(parents=True, exist_ok=True)


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]ERROR[/bold red] {escape(message)}")
    raise typer.Exit(code=1)


def _open_index(config: AppConfig, state_path: Path) -> CorpusIndex:
    """Load the saved index, or build a fresh one from the document directories."""
    started = time.perf_counter()
    try:
        if state_path.exists():
            index = load_index(state_path, rewalk=config.rewalk)
            verb = "load"
        else:
            console.print("Creating the index...")
            index = CorpusIndex()
            for docs_dir in config.docs_dirs:
                index.add_directory(docs_dir)
            verb = "create"
    except IndexFormatError as exc:
        _fail(str(exc))
    except OSError as exc:
        _fail(f"Cannot read {exc.filename or state_path}: {exc.strerror or exc}")
    console.print(f"Took {time.perf_counter() - started:.2f}s to {verb} the index!")
    return index


def _save(index: CorpusIndex, state_path: Path) -> None:
    try:
        _ensure_state_parent(state_path)
        save_index(index, state_path)
    except OSError as exc:
        _fail(f"Cannot save the index to {state_path}: {exc}")


def _print_results(request: str, view: CorpusView, engine: QueryEngine, top_k: int) -> None:
    started = time.perf_counter()
    ranked = rank_results(engine.evaluate(view, request), top_k)
    elapsed = time.perf_counter() - started

    if not ranked:
        console.print(f"No results for {escape(request)}")
        return

    console.print(f"Results for {escape(request)} (retrieved in {elapsed:.2f}s)")
    for result in ranked:
        console.print(f"{escape(str(result.path))} {result.score}", soft_wrap=True)


def run_query_loop(
    view: CorpusView,
    engine: QueryEngine,
    *,
    top_k: int,
    read_request: Callable[[], str],
) -> None:
    """Answer queries until ``:quit`` or end of input."""
    while True:
        try:
            request = read_request().rstrip()
        except EOFError:
            return
        if request == QUIT_COMMAND:
            return
        _print_results(request, view, engine, top_k)


@app.command()
def search(
    state_file: Path = typer.Argument(..., help="File the index is loaded from and saved to."),
    docs: Optional[List[Path]] = typer.Option(
        None, "--docs", help="Directories to index when the state file does not exist."
    ),
    workers: int = typer.Option(AppConfig().workers, help="Query worker threads"),
    top_k: int = typer.Option(AppConfig().top_k, help="Number of results to display"),
    rewalk: bool = typer.Option(False, "--rewalk", help="Walk tracked directories again on load"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Interactive search. Type :quit to save the index and exit."""
    _setup_logging(verbose)
    config = AppConfig(state_path=state_file, workers=workers, top_k=top_k, rewalk=rewalk)
    if docs:
        config.docs_dirs = tuple(docs)

    state_path = config.resolve_state_path(Path.cwd())
    index = _open_index(config, state_path)

    console.print(f"Search among {index.corpus_size()} files!")
    console.print(f"(type {QUIT_COMMAND} when you're done)")

    with QueryEngine(config.workers) as engine:
        run_query_loop(
            index.view(),
            engine,
            top_k=config.top_k,
            read_request=lambda: console.input("> "),
        )

    _save(index, state_path)


@app.command()
def query(
    state_file: Path = typer.Argument(..., help="Saved index"),
    text: str = typer.Argument(..., help="Query text"),
    workers: int = typer.Option(AppConfig().workers, help="Query worker threads"),
    top_k: int = typer.Option(AppConfig().top_k, help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run a single query against a saved index."""
    _setup_logging(verbose)
    config = AppConfig(state_path=state_file, workers=workers, top_k=top_k)
    state_path = config.resolve_state_path(Path.cwd())

    if not state_path.exists():
        raise typer.BadParameter(f"State file not found: {state_path}")

    index = _open_index(config, state_path)
    with QueryEngine(config.workers) as engine:
        ranked = rank_results(engine.evaluate(index.view(), text), config.top_k)

    if not ranked:
        console.print(f"[yellow]No results for {escape(text)}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    for result in ranked:
        table.add_row(f"{result.score:.4f}", escape(str(result.path)))
    console.print(table)


@app.command()
def index(
    state_file: Path = typer.Argument(..., help="File the index is saved to."),
    inputs: List[Path] = typer.Argument(..., help="Directories to index."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Add directories to the index, creating the state file if needed."""
    _setup_logging(verbose)
    config = AppConfig(state_path=state_file, docs_dirs=())
    state_path = config.resolve_state_path(Path.cwd())

    corpus = _open_index(config, state_path)
    for dir_path in inputs:
        console.print(f"Indexing [bold]{escape(str(dir_path))}[/bold]...")
        try:
            stats = corpus.add_directory(dir_path, skip_unchanged=True)
        except OSError as exc:
            _fail(f"Cannot index {dir_path}: {exc}")
        console.print(
            f"Indexed: {stats.indexed}, unchanged: {stats.unchanged}, "
            f"skipped: {stats.skipped}, failed: {stats.failed}"
        )

    _save(corpus, state_path)


@app.command()
def prune(
    state_file: Path = typer.Argument(..., help="Saved index"),
    rewalk: bool = typer.Option(False, "--rewalk", help="Also walk tracked directories for new files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Drop deleted files and re-index modified ones."""
    _setup_logging(verbose)
    state_path = AppConfig(state_path=state_file).resolve_state_path(Path.cwd())

    if not state_path.exists():
        console.print("[yellow]State file not found, nothing to prune.[/yellow]")
        return

    try:
        corpus = read_index(state_path)
        stats = reconcile(corpus, rewalk=rewalk)
    except IndexFormatError as exc:
        _fail(str(exc))
    except OSError as exc:
        _fail(f"Cannot read {exc.filename or state_path}: {exc.strerror or exc}")

    console.print(
        f"Removed {len(stats.removed)} missing documents, updated {len(stats.updated)}, "
        f"failed {len(stats.failed)}, discovered {stats.discovered}."
    )
    _save(corpus, state_path)
