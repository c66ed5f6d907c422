"""Command line interface for NoteFinder."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from notefinder.config import DEFAULT_MASK, AppConfig
from notefinder.engine import SearchEngine
from notefinder.errors import NoteFinderError
from notefinder.index.search import SEARCH_MODES

console = Console()
app = typer.Typer(help="NoteFinder - local hybrid search for notes and text files")
collection_app = typer.Typer(help="Manage document collections")
app.add_typer(collection_app, name="collection")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _engine(db: Optional[Path]) -> SearchEngine:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    return SearchEngine(config)


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[red]Error: {exc}[/red]")
    raise typer.Exit(code=1)


DbOption = typer.Option(None, "--db", help="SQLite database path")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Verbose logging")


@collection_app.command("add")
def collection_add(
    path: Path = typer.Argument(..., help="Directory to index."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Collection name"),
    mask: str = typer.Option(DEFAULT_MASK, "--mask", "-m", help="Glob pattern for files"),
    db: Optional[Path] = DbOption,
    verbose: bool = VerboseOption,
) -> None:
    """Register a directory as a collection and index it."""
    _setup_logging(verbose)
    collection_name = name or path.expanduser().resolve().name
    try:
        with _engine(db) as engine:
            collection = engine.add_collection(collection_name, path, mask)
    except NoteFinderError as exc:
        _fail(exc)
    console.print(
        f"[green]Added collection \"{collection.name}\" from {collection.path} "
        f"({collection.file_count} files)[/green]"
    )


@collection_app.command("remove")
def collection_remove(
    name: str = typer.Argument(..., help="Collection name"),
    db: Optional[Path] = DbOption,
) -> None:
    """Remove a collection and everything indexed from it."""
    try:
        with _engine(db) as engine:
            engine.remove_collection(name)
    except NoteFinderError as exc:
        _fail(exc)
    console.print(f"[green]Removed collection \"{name}\"[/green]")


@collection_app.command("list")
def collection_list(db: Optional[Path] = DbOption) -> None:
    """List registered collections."""
    try:
        with _engine(db) as engine:
            collections = engine.list_collections()
    except NoteFinderError as exc:
        _fail(exc)

    if not collections:
        console.print("[yellow]No collections found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name")
    table.add_column("Path")
    table.add_column("Mask")
    table.add_column("Files", justify="right")
    for collection in collections:
        table.add_row(
            collection.name, str(collection.path), collection.mask, str(collection.file_count)
        )
    console.print(table)


@app.command()
def index(
    name: str = typer.Argument(..., help="Collection to re-index"),
    db: Optional[Path] = DbOption,
    verbose: bool = VerboseOption,
) -> None:
    """Re-index one collection."""
    _setup_logging(verbose)
    try:
        with _engine(db) as engine:
            stats = engine.index_collection(name)
    except NoteFinderError as exc:
        _fail(exc)
    console.print(
        f"Indexed: {stats.indexed}, skipped: {stats.skipped}, "
        f"removed: {stats.removed}, failed: {stats.failed}"
    )


@app.command()
def update(db: Optional[Path] = DbOption, verbose: bool = VerboseOption) -> None:
    """Re-index every collection."""
    _setup_logging(verbose)
    try:
        with _engine(db) as engine:
            results = engine.update_collections()
    except NoteFinderError as exc:
        _fail(exc)
    for name, stats in results.items():
        if stats.error:
            console.print(f"[red]{name}: {stats.error}[/red]")
            continue
        console.print(
            f"{name}: indexed {stats.indexed}, skipped {stats.skipped}, removed {stats.removed}"
        )
    console.print("[green]Collections updated[/green]")


@app.command()
def embed(
    force: bool = typer.Option(False, "--force", "-f", help="Recompute existing embeddings"),
    db: Optional[Path] = DbOption,
    verbose: bool = VerboseOption,
) -> None:
    """Generate embeddings for indexed documents."""
    _setup_logging(verbose)
    try:
        with _engine(db) as engine:
            stats = engine.generate_embeddings(force=force)
    except NoteFinderError as exc:
        _fail(exc)
    console.print(f"Generated: {stats.generated}, failed: {stats.failed}")


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    mode: str = typer.Option("hybrid", "--mode", help="text, vector or hybrid"),
    limit: int = typer.Option(5, "--limit", "-n", help="Number of results"),
    collection: Optional[str] = typer.Option(None, "--collection", "-c", help="Collection"),
    min_score: float = typer.Option(0.0, "--min-score", help="Minimum score"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
    db: Optional[Path] = DbOption,
    verbose: bool = VerboseOption,
) -> None:
    """Search indexed documents."""
    _setup_logging(verbose)
    if mode not in SEARCH_MODES:
        raise typer.BadParameter(f"mode must be one of {', '.join(SEARCH_MODES)}")
    try:
        with _engine(db) as engine:
            response = engine.search(
                query, mode=mode, limit=limit, collection=collection, min_score=min_score
            )
    except NoteFinderError as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps(response.to_dict(), indent=2))
        return

    if not response.results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Id")
    table.add_column("Document")
    table.add_column("Snippet")
    for result in response.results:
        table.add_row(
            f"{result.score:.4f}",
            f"#{result.id}",
            f"{result.title}\n{result.path}",
            result.snippet.replace("\n", " ")[:180],
        )
    console.print(table)
    console.print(f"[dim]~{response.token_estimate} tokens[/dim]")


@app.command()
def get(
    identifier: str = typer.Argument(..., help="Document path or #id"),
    lines: Optional[int] = typer.Option(None, "--lines", "-l", help="Maximum lines"),
    from_line: int = typer.Option(1, "--from", help="First line to return"),
    db: Optional[Path] = DbOption,
) -> None:
    """Print a document by path or #id."""
    try:
        with _engine(db) as engine:
            document = engine.get_document(identifier, max_lines=lines, from_line=from_line)
    except NoteFinderError as exc:
        _fail(exc)
    console.print(f"[cyan]{document.path}[/cyan]")
    if document.title:
        console.print(f"[bold]{document.title}[/bold]")
    console.print("-" * 60, style="dim")
    typer.echo(document.content)


@app.command()
def status(db: Optional[Path] = DbOption) -> None:
    """Show index statistics."""
    try:
        with _engine(db) as engine:
            stats = engine.get_stats()
            collections = engine.list_collections()
            db_path = engine.db_path
    except NoteFinderError as exc:
        _fail(exc)

    console.print(f"Database: {db_path}")
    console.print(
        f"Collections: {stats.collections}, documents: {stats.documents}, "
        f"embeddings: {stats.embeddings}, size: {stats.db_size_bytes} bytes"
    )
    for collection in collections:
        console.print(f"  {collection.name}: {collection.path} ({collection.file_count} files)")


@app.command()
def cleanup(db: Optional[Path] = DbOption) -> None:
    """Remove orphaned rows and compact the database."""
    try:
        with _engine(db) as engine:
            removed = engine.cleanup()
    except NoteFinderError as exc:
        _fail(exc)
    console.print(f"Removed {removed} orphaned documents.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - optional extra
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from notefinder.web.app import app as web_app

    console.print(f"Starting HTTP API on http://{host}:{port}")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")
