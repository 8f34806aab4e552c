"""Pattern store commands — neuroevo patterns list/show/import."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from neuroevo.cli.context import NeuroevoContext, run_async
from neuroevo.types import NeuralPattern, PatternType

app = typer.Typer(help="Inspect and load stored patterns")
console = Console()


@app.command("list")
def list_patterns(
    pattern_type: Optional[PatternType] = typer.Option(None, "--type", "-t", help="Only this type"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max rows"),
):
    """List stored patterns."""
    ctx = NeuroevoContext.get()

    async def _list():
        store = await ctx.ensure_store()
        if pattern_type is not None:
            return (await store.get_patterns_by_type(pattern_type))[:limit]
        return await store.list_patterns(limit=limit)

    patterns = run_async(_list())
    if not patterns:
        console.print("[dim]No patterns stored.[/dim]")
        return

    table = Table(title="Patterns")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Type", style="blue")
    table.add_column("Version")
    table.add_column("Gen", justify="right")
    table.add_column("Accuracy", justify="right", style="green")
    table.add_column("Efficiency", justify="right", style="green")

    for p in patterns:
        table.add_row(
            p.id,
            p.name,
            p.type.value,
            p.version,
            str(p.generation),
            f"{p.performance.accuracy:.2f}",
            f"{p.performance.efficiency:.2f}",
        )
    console.print(table)


@app.command("show")
def show(pattern_id: str = typer.Argument(help="Pattern ID")):
    """Show one pattern in full."""
    ctx = NeuroevoContext.get()

    async def _get():
        store = await ctx.ensure_store()
        return await store.get_pattern(pattern_id)

    pattern = run_async(_get())
    if pattern is None:
        console.print(f"[red]Pattern {pattern_id} not found[/red]")
        raise typer.Exit(code=1)
    console.print_json(pattern.model_dump_json())


@app.command("import")
def import_patterns(
    path: Path = typer.Argument(help="JSON file holding a pattern or a list of patterns"),
):
    """Load patterns from a JSON file into the store."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read {path}: {e}[/red]")
        raise typer.Exit(code=1)

    items = raw if isinstance(raw, list) else [raw]
    try:
        patterns = [NeuralPattern.model_validate(item) for item in items]
    except ValidationError as e:
        console.print(f"[red]Invalid pattern data: {e}[/red]")
        raise typer.Exit(code=1)

    ctx = NeuroevoContext.get()

    async def _store():
        store = await ctx.ensure_store()
        for p in patterns:
            await store.store_pattern(p)

    run_async(_store())
    console.print(f"[green]Imported {len(patterns)} pattern(s)[/green]")
