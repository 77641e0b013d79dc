"""Command line interface for vaultsearch."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from vaultsearch.config import AppConfig
from vaultsearch.errors import VaultSearchError
from vaultsearch.service import SemanticIndex

console = Console()
app = typer.Typer(help="vaultsearch - incremental semantic search for Markdown vaults")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load_config(
    vault: Optional[Path],
    db: Optional[Path] = None,
    provider: Optional[str] = None,
    model: Optional[str] = None,
) -> AppConfig:
    config = AppConfig.from_env(vault_path=vault, db_path=db, provider=provider, model_name=model)
    if config.vault_path is None:
        raise typer.BadParameter("No vault given. Pass --vault or set VAULT_PATH.")
    if not Path(config.vault_path).is_dir():
        raise typer.BadParameter(f"Vault not found: {config.vault_path}")
    return config


def _open_index(config: AppConfig) -> SemanticIndex:
    index = SemanticIndex(config)
    index.open()
    if not index.is_available:
        raise typer.BadParameter(
            "Semantic index not available: set OPENAI_API_KEY or use --provider local"
        )
    return index


@app.command()
def index(
    vault: Path = typer.Argument(..., help="Vault folder to index.", resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    provider: str = typer.Option(None, help="Embedding provider: openai or local"),
    model: str = typer.Option(None, help="Embedding model name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Reconcile the index with the vault once and exit."""
    _setup_logging(verbose)
    config = _load_config(vault, db, provider, model)
    semantic_index = _open_index(config)
    try:
        console.print(f"Indexing into [bold]{semantic_index.store.db_path}[/bold]...")
        stats = semantic_index.coordinator.reconcile()
    finally:
        semantic_index.shutdown()
    console.print(
        f"Inserted: {stats.inserted}, updated: {stats.updated}, skipped: {stats.skipped}, "
        f"removed: {stats.removed}, failed: {stats.failed}"
    )


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    vault: Path = typer.Option(None, "--vault", help="Vault folder"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    provider: str = typer.Option(None, help="Embedding provider: openai or local"),
    model: str = typer.Option(None, help="Embedding model name"),
    limit: int = typer.Option(5, help="Number of results to display"),
    folder: Optional[str] = typer.Option(None, help="Only notes under this folder"),
    threshold: Optional[float] = typer.Option(None, help="Minimum similarity score (0-1)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Execute a semantic search."""
    _setup_logging(verbose)
    config = _load_config(vault, db, provider, model)
    semantic_index = _open_index(config)
    try:
        results = semantic_index.search_raw(
            query, limit=limit, folder=folder, threshold=threshold
        )
    except VaultSearchError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    finally:
        semantic_index.shutdown()

    if not results:
        console.print("[yellow]No semantically related notes found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Note")
    table.add_column("Section")
    table.add_column("Preview")

    for hit in results:
        table.add_row(f"{hit.score:.3f}", hit.path, hit.heading or "", hit.preview[:180])

    console.print(table)


@app.command()
def watch(
    vault: Path = typer.Argument(..., help="Vault folder to watch.", resolve_path=True),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    provider: str = typer.Option(None, help="Embedding provider: openai or local"),
    model: str = typer.Option(None, help="Embedding model name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Sync in the background and keep the index current until interrupted."""
    _setup_logging(verbose)
    config = _load_config(vault, db, provider, model)
    semantic_index = _open_index(config)
    semantic_index.start()
    console.print(f"Watching [bold]{config.vault_path}[/bold] (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        console.print("Stopping...")
    finally:
        semantic_index.shutdown()


@app.command()
def status(
    vault: Path = typer.Option(None, "--vault", help="Vault folder"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    provider: str = typer.Option(None, help="Embedding provider: openai or local"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show what the index currently holds."""
    _setup_logging(verbose)
    config = _load_config(vault, db, provider)
    semantic_index = _open_index(config)
    try:
        stats = semantic_index.store.get_stats()
    finally:
        semantic_index.shutdown()
    console.print(
        f"Documents: {stats['document_count']}, passages: {stats['passage_count']}, "
        f"vectors: {stats['vector_count']}"
    )


@app.command()
def remove(
    path: str = typer.Argument(..., help="Vault-relative note path"),
    vault: Path = typer.Option(None, "--vault", help="Vault folder"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    provider: str = typer.Option(None, help="Embedding provider: openai or local"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Drop one note from the index."""
    _setup_logging(verbose)
    config = _load_config(vault, db, provider)
    semantic_index = _open_index(config)
    try:
        removed = semantic_index.remove_file(path)
    finally:
        semantic_index.shutdown()
    if removed:
        console.print(f"Removed {path} from the index.")
    else:
        console.print(f"[yellow]{path} was not indexed.[/yellow]")


@app.command()
def web(
    vault: Path = typer.Option(None, "--vault", help="Vault folder"),
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the HTTP interface."""
    import uvicorn

    from vaultsearch.web.app import create_app

    config = _load_config(vault)
    console.print(f"Starting web interface on http://{host}:{port} (vault: {config.vault_path})")
    uvicorn.run(create_app(config), host=host, port=port, reload=False, log_level="info")
