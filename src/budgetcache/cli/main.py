"""CLI for budgetcache: stats / prune / clear / export / strategies commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from budgetcache.context.cache import ExactResponseCache, create_response_cache, default_strategies
from budgetcache.core.config import AppSettings, ObservabilityConfig, ResponseCacheConfig
from budgetcache.logging_config import setup_logging

app = typer.Typer(name="budgetcache", help="Inspect and maintain the budgetcache response cache")
console = Console()


def _build_cache(cache_dir: Optional[Path], verbose: bool) -> ExactResponseCache:
    """Build the exact cache, overriding env defaults with CLI flags."""
    setup_logging(ObservabilityConfig(log_level="DEBUG" if verbose else "WARNING"))
    overrides: dict = {"backend": "file"}
    if cache_dir:
        overrides["cache_dir"] = cache_dir
    settings = AppSettings(response_cache=ResponseCacheConfig(**overrides))
    return create_response_cache(settings)


@app.command()
def stats(
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir", help="Cache directory"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Show response cache statistics."""
    cache = _build_cache(cache_dir, verbose)
    asyncio.run(cache.load())
    data = cache.get_stats()

    if as_json:
        console.print_json(json.dumps(data))
        return

    table = Table(title="Response cache")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Entries", str(data["total_entries"]))
    table.add_row("Hits", str(data["total_hits"]))
    table.add_row("Tokens saved", str(data["total_tokens_saved"]))
    table.add_row("Hit ratio", f"{data['hit_ratio']:.1%}")
    table.add_row("Size (bytes)", str(data["cache_size"]))
    console.print(table)


@app.command()
def prune(
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir", help="Cache directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Remove expired entries from the persisted cache."""
    cache = _build_cache(cache_dir, verbose)

    async def _run() -> int:
        await cache.load()
        return await cache.cleanup_expired()

    removed = asyncio.run(_run())
    console.print(f"[yellow]Removed {removed} expired cache entries[/yellow]")


@app.command()
def clear(
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir", help="Cache directory"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Delete every cached response."""
    if not yes:
        typer.confirm("Delete all cached responses?", abort=True)
    cache = _build_cache(cache_dir, verbose)
    removed = asyncio.run(cache.clear())
    console.print(f"[yellow]Cleared {removed} cache entries[/yellow]")


@app.command()
def export(
    output: Path = typer.Argument(..., help="Destination JSON file"),
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir", help="Cache directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Export cache entries plus settings metadata to a JSON file."""
    cache = _build_cache(cache_dir, verbose)

    async def _run() -> Path:
        await cache.load()
        return await cache.export(output)

    path = asyncio.run(_run())
    console.print(f"[green]Cache exported to {path}[/green]")


@app.command()
def strategies() -> None:
    """List the built-in caching strategies."""
    table = Table(title="Cache strategies")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Enabled")
    table.add_column("Max age (s)", justify="right")
    table.add_column("Max size", justify="right")
    table.add_column("Conditions")
    for strategy_id, strategy in default_strategies().items():
        conditions = "; ".join(f"{c.type} {c.operator} {c.value}" for c in strategy.conditions)
        table.add_row(
            strategy_id,
            strategy.name,
            "[green]yes[/green]" if strategy.enabled else "[red]no[/red]",
            str(int(strategy.max_age)),
            str(strategy.max_size),
            conditions,
        )
    console.print(table)


if __name__ == "__main__":
    app()
