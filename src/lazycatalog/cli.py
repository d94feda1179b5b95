"""
lazycatalog CLI - inspect extension catalogs from the command line.

Scan a directory for extension modules, list their metadata, materialize a
single extension, manage the metadata cache or keep a catalog refreshed
while files change.
"""

import json
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from lazycatalog.config import settings
from lazycatalog.logging_config import setup_logging

app = typer.Typer(
    name="lazycatalog",
    help="lazycatalog - lazy, cached extension catalog",
    no_args_is_help=True,
)
cache_app = typer.Typer(help="Inspect or clear the metadata cache", no_args_is_help=True)
app.add_typer(cache_app, name="cache")

console = Console()


def _init_logging(verbose: bool) -> None:
    try:
        setup_logging(context="cli", level="DEBUG" if verbose else "WARNING")
    except PermissionError:
        import logging

        logging.basicConfig(level=logging.WARNING)


def _build_catalog(
    root: Path,
    pattern: str,
    recursive: bool,
    cache_dir: Optional[Path],
    timeout: Optional[float],
):
    from lazycatalog.catalog import LazyDirectoryCatalog
    from lazycatalog.exceptions import ConfigurationError
    from lazycatalog.extractor import IsolatedExtractor

    extractor = IsolatedExtractor(
        timeout=timeout if timeout is not None else settings.extraction_timeout,
        max_workers=settings.extraction_workers,
        start_method=settings.extraction_start_method,
    )
    try:
        return LazyDirectoryCatalog(
            root,
            pattern,
            recursive=recursive,
            cache_dir=cache_dir,
            extractor=extractor,
        )
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def scan(
    root: Path = typer.Argument(..., help="Directory containing extension modules"),
    pattern: str = typer.Option(settings.default_pattern, help="Module file name pattern"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Scan subdirectories"),
    cache_dir: Optional[Path] = typer.Option(None, help="Metadata cache directory"),
    timeout: Optional[float] = typer.Option(None, help="Per-module extraction timeout (s)"),
    as_json: bool = typer.Option(False, "--json", help="Print parts as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """
    Scan a directory and list the extensions it declares.

    Modules are inspected in isolated processes; nothing is loaded into this
    process.
    """
    _init_logging(verbose)
    catalog = _build_catalog(root, pattern, recursive, cache_dir, timeout)
    result = catalog.last_refresh

    if as_json:
        payload = {
            "parts": [record.model_dump(mode="json") for record in catalog.parts],
            "refresh": result.to_dict() if result else None,
        }
        typer.echo(json.dumps(payload, indent=2))
    else:
        table = Table(title=f"Extensions in {catalog.root_directory}")
        table.add_column("Name", style="bold")
        table.add_column("Metadata")
        table.add_column("Module")
        table.add_column("Attribute")

        for record in catalog.parts:
            metadata = ", ".join(f"{k}={v}" for k, v in record.attributes)
            table.add_row(
                record.exported_name,
                metadata,
                record.module_file_name,
                record.activation.attribute,
            )
        console.print(table)

        if result:
            console.print(
                f"  Parts: {result.record_count}  "
                f"Extracted: {len(result.extracted)}  "
                f"Reused: {len(result.reused)}  "
                f"Removed: {len(result.removed)}  "
                f"Failed: {len(result.failures)}"
            )
            for module_path, error in result.failures.items():
                console.print(f"  [red]✗[/red] {module_path.name}: {error.reason}")

    if result and result.failures:
        raise typer.Exit(1)


@app.command()
def activate(
    root: Path = typer.Argument(..., help="Directory containing extension modules"),
    name: str = typer.Argument(..., help="Exported extension name"),
    pattern: str = typer.Option(settings.default_pattern, help="Module file name pattern"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Scan subdirectories"),
    cache_dir: Optional[Path] = typer.Option(None, help="Metadata cache directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """
    Materialize one extension and print it.

    This loads the owning module into the CLI process.
    """
    from lazycatalog.exceptions import ActivationError

    _init_logging(verbose)
    catalog = _build_catalog(root, pattern, recursive, cache_dir, None)

    extension = catalog.get(name)
    if extension is None:
        console.print(f"[bold red]Error:[/bold red] Extension not found: {name}")
        raise typer.Exit(1)

    try:
        instance = extension.value
    except ActivationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Activated[/green] {name}: {instance!r}")


@app.command()
def watch(
    root: Path = typer.Argument(..., help="Directory containing extension modules"),
    pattern: str = typer.Option(settings.default_pattern, help="Module file name pattern"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Scan subdirectories"),
    cache_dir: Optional[Path] = typer.Option(None, help="Metadata cache directory"),
    debounce: float = typer.Option(
        settings.watch_debounce_seconds, help="Seconds to wait after a change"
    ),
) -> None:
    """
    Keep a catalog refreshed while module files change.

    Runs until interrupted with Ctrl+C.
    """
    from lazycatalog.catalog import RefreshResult
    from lazycatalog.watch import CatalogWatcher

    setup_logging(context="watch")
    catalog = _build_catalog(root, pattern, recursive, cache_dir, None)
    console.print(f"[bold blue]Watching:[/bold blue] {catalog.root_directory}")
    console.print(f"  Parts: {len(catalog)}")

    def report(result: RefreshResult) -> None:
        console.print(
            f"[cyan]Refreshed:[/cyan] {result.record_count} part(s), "
            f"{len(result.extracted)} extracted, {len(result.failures)} failed"
        )

    watcher = CatalogWatcher(catalog, debounce_seconds=debounce, on_refresh=report)
    watcher.start()
    try:
        while watcher.is_running():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        watcher.stop()
        console.print("[green]✓ Watcher stopped[/green]")


@cache_app.command("list")
def cache_list(
    cache_dir: Optional[Path] = typer.Option(None, help="Metadata cache directory"),
) -> None:
    """List cached module versions."""
    from lazycatalog.cache import MetadataCache, format_timestamp

    cache = MetadataCache(cache_dir or settings.cache_directory)
    entries = cache.read_all_entries()

    table = Table(title=f"Metadata cache {cache.cache_dir}")
    table.add_column("Module", style="bold")
    table.add_column("Timestamp")
    table.add_column("Records", justify="right")
    for key, records in entries:
        table.add_row(key.module_file_name, format_timestamp(key.timestamp), str(len(records)))
    console.print(table)
    console.print(f"  Entries: {len(entries)}")


@cache_app.command("clear")
def cache_clear(
    cache_dir: Optional[Path] = typer.Option(None, help="Metadata cache directory"),
) -> None:
    """Remove every cached entry."""
    from lazycatalog.cache import MetadataCache

    cache = MetadataCache(cache_dir or settings.cache_directory)
    removed = cache.clear()
    console.print(f"[green]✓ Removed {removed} cache entries[/green]")


if __name__ == "__main__":
    app()
