"""Command line interface for QuickSearch."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from quicksearch.config import AppConfig, ConfigError
from quicksearch.index.search import Searcher
from quicksearch.index.storage import CacheError, MemoryStore, SharedMemoryStore
from quicksearch.web.app import create_app

console = Console()
app = typer.Typer(help="QuickSearch - jump-to-page search for the admin console")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _config(
    web_root: Optional[Path],
    synonyms: Optional[Path],
    packages: Optional[Path] = None,
    menu: Optional[Path] = None,
) -> AppConfig:
    try:
        config = AppConfig.from_env()
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if web_root is not None:
        config = replace(config, web_root=web_root, exclude_dirs=None)
    if synonyms is not None:
        config.synonyms_dir = synonyms
    if packages is not None:
        config.package_dir = packages
    if menu is not None:
        config.menu_file = menu
    return config


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    web_root: Path = typer.Option(None, "--web-root", help="Console web root to scan"),
    synonyms: Path = typer.Option(None, "--synonyms", help="Directory of synonym JSON files"),
    packages: Path = typer.Option(None, "--packages", help="Directory of package manifests"),
    menu: Path = typer.Option(None, "--menu", help="Menu tree JSON file"),
    limit: int = typer.Option(AppConfig().result_limit, help="Number of results to display"),
    whole_words: bool = typer.Option(False, "--whole-words", "-w", help="Whole words only"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Build the index in-process and run one query."""
    _setup_logging(verbose)
    config = _config(web_root, synonyms, packages, menu)
    if not config.web_root.exists():
        raise typer.BadParameter(f"Web root not found: {config.web_root}")

    searcher = Searcher.from_config(config, store=MemoryStore())
    results = searcher.search(query, whole_words=whole_words, limit=limit)
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#")
    table.add_column("Page")
    table.add_column("Path")
    for result in results:
        table.add_row(str(result.id), result.name, result.path)
    console.print(table)


@app.command()
def scan(
    web_root: Path = typer.Option(None, "--web-root", help="Console web root to scan"),
    packages: Path = typer.Option(None, "--packages", help="Directory of package manifests"),
    menu: Path = typer.Option(None, "--menu", help="Menu tree JSON file"),
    path_filter: str = typer.Option("", "--filter", help="Show documents whose path contains this"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Build the index and print statistics."""
    _setup_logging(verbose)
    config = _config(web_root, None, packages, menu)
    if not config.web_root.exists():
        raise typer.BadParameter(f"Web root not found: {config.web_root}")

    searcher = Searcher.from_config(config, store=MemoryStore())
    searcher.scheduler.ensure_index()
    stats = searcher.diagnostics(path_filter or None)
    console.print(f"Indexed records: [bold]{stats['records_indexed']}[/bold]")

    sample = stats.get("sample_matching") or []
    if not sample:
        return
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Title")
    table.add_column("Page")
    table.add_column("Path")
    for doc in sample:
        table.add_row(doc["title"][:80], doc["page"], doc["path"])
    console.print(table)


@app.command("drop-cache")
def drop_cache(
    name: str = typer.Option(None, "--name", help="Shared cache name (defaults to QUICKSEARCH_CACHE_NAME)"),
) -> None:
    """Remove the shared memory cache so the next worker starts empty."""
    config = _config(None, None)
    cache_name = name or config.cache_name
    try:
        store = SharedMemoryStore(cache_name, size=config.cache_size)
    except CacheError as exc:
        console.print(f"[red]Cannot open shared cache {cache_name}: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    store.close()
    store.unlink()
    console.print(f"Removed shared cache [bold]{cache_name}[/bold]")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    web_root: Path = typer.Option(None, "--web-root", help="Console web root to scan"),
    synonyms: Path = typer.Option(None, "--synonyms", help="Directory of synonym JSON files"),
) -> None:
    """Start the search endpoint."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    config = _config(web_root, synonyms)
    if not config.web_root.exists():
        console.print("[yellow]Warning: web root not found, searches will return nothing.[/yellow]")

    console.print(f"Starting search endpoint on http://{host}:{port} (web root: {config.web_root})")
    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":  # pragma: no cover
    app()
