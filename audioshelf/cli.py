"""Main CLI entry point for audioshelf.

Import files and folders into the library, inspect it, or serve the HTTP API.
The library location comes from --library-dir or AUDIOSHELF_LIBRARY_DIR.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Tuple

import click
import uvicorn
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from .library import LibraryStore
from .models import ImportBatch
from .organizer import ImportCoordinator
from .server import create_app
from .settings import Settings, configure_logging


console = Console()


def build_coordinator(settings: Settings) -> ImportCoordinator:
    settings.ensure_dirs()
    store = LibraryStore(str(settings.db_path))
    return ImportCoordinator(store, settings.library_dir, concurrency=settings.import_concurrency)


def render_batch(batch: ImportBatch) -> None:
    """Print a summary table and a detail table for failures."""
    summary = Table(title="Import summary", show_header=True, header_style="bold cyan")
    summary.add_column("Result", style="dim", width=20)
    summary.add_column("Files", style="white")
    summary.add_row("Imported", f"[green]{len(batch.succeeded)}[/green]")
    summary.add_row("Failed", f"[red]{len(batch.failed)}[/red]" if batch.failed else "0")
    console.print(summary)

    if batch.failed:
        details = Table(title="Failures", show_header=True, header_style="bold red")
        details.add_column("File", style="white")
        details.add_column("Reason", style="yellow")
        for result in batch.failed:
            details.add_row(result.file_name, result.failure_reason or "Unknown error")
        console.print(details)

    if batch.commit_error:
        console.print(f"[red]Library was not updated: {batch.commit_error}[/red]")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--library-dir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    help="Library directory (env: AUDIOSHELF_LIBRARY_DIR)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main_cli(ctx: click.Context, library_dir: Optional[Path], verbose: bool):
    """Organize audio files into a personal library."""
    settings = Settings.from_env(library_dir)
    configure_logging(settings, level=logging.DEBUG if verbose else logging.INFO)
    ctx.obj = settings


@main_cli.command("import")
@click.argument("paths", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.pass_obj
def import_command(settings: Settings, paths: Tuple[Path, ...]):
    """Import audio files and folders given as PATHS."""
    coordinator = build_coordinator(settings)
    batch = asyncio.run(coordinator.import_paths(list(paths)))
    render_batch(batch)
    if batch.commit_error:
        raise click.ClickException("Import batch could not be saved")


@main_cli.command("library")
@click.pass_obj
def library_command(settings: Settings):
    """Show the folder tree with entry counts."""
    coordinator = build_coordinator(settings)
    store = coordinator.store

    root = Tree(f"📚 {settings.library_dir}")

    def add_folder(branch: Tree, folder) -> None:
        node = branch.add(f"📁 {folder.name} [dim]({folder.file_count})[/dim]")
        for child in store.child_folders(folder.id):
            add_folder(node, child)
        for entry in store.folder_entries(folder.id):
            node.add(entry.display_title)

    for folder in store.root_folders():
        add_folder(root, folder)
    for entry in store.list_entries(unfiled_only=True):
        root.add(entry.display_title)
    console.print(root)


@main_cli.command("serve")
@click.option("--host", default=os.getenv("HOST", "127.0.0.1"), show_default=True, help="Server host")
@click.option("--port", default=int(os.getenv("PORT", "8000")), show_default=True, help="Server port", type=int)
@click.pass_obj
def serve_command(settings: Settings, host: str, port: int):
    """Serve the library HTTP API."""
    coordinator = build_coordinator(settings)
    console.print(f"Starting audioshelf on http://{host}:{port}")
    uvicorn.run(create_app(coordinator), host=host, port=port, timeout_keep_alive=5)


def main():
    """Main entry point."""
    main_cli()


if __name__ == "__main__":
    main()
