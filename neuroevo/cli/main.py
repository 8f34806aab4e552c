"""neuroevo CLI — manage stored patterns and run evolutions.

`neuroevo patterns list|show|import` works on the SQLite store;
`neuroevo evolve ID` evolves one stored pattern and prints the result.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from neuroevo.cli import patterns
from neuroevo.cli.context import NeuroevoContext, configure_logging, run_async
from neuroevo.events.bus import Event
from neuroevo.exceptions import EvolutionCancelled, EvolutionFailed, PatternNotFoundError
from neuroevo.types import EnvironmentContext, EvolutionContext

console = Console()

app = typer.Typer(
    name="neuroevo",
    help="neuroevo -- evolve neural coordination patterns.",
    no_args_is_help=True,
)
app.add_typer(patterns.app, name="patterns", help="Inspect and load stored patterns")


@app.callback()
def main(
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite pattern database"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
):
    configure_logging(log_level)
    NeuroevoContext.configure(db)


@app.command("evolve")
def evolve(
    pattern_id: str = typer.Argument(help="ID of the stored pattern to evolve"),
    population: Optional[int] = typer.Option(None, "--population", "-p", help="Population size"),
    generations: Optional[int] = typer.Option(None, "--generations", "-g", help="Max generations"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Fitness threshold"),
    seed: Optional[int] = typer.Option(None, "--seed", help="RNG seed for a reproducible run"),
    complexity: float = typer.Option(0.0, "--complexity", min=0.0, max=1.0),
    dynamism: float = typer.Option(0.0, "--dynamism", min=0.0, max=1.0),
    time_constraints: float = typer.Option(0.0, "--time-constraints", min=0.0, max=1.0),
    competitive: float = typer.Option(0.0, "--competitive", min=0.0, max=1.0),
):
    """Evolve a stored pattern and save the winner."""
    ctx = NeuroevoContext.get()
    overrides = {
        "population_size": population,
        "max_generations": generations,
        "fitness_threshold": threshold,
        "seed": seed,
    }
    config = {k: v for k, v in overrides.items() if v is not None}
    context = EvolutionContext(environment=EnvironmentContext(
        complexity=complexity,
        dynamism=dynamism,
        time_constraints=time_constraints,
        competitive_level=competitive,
    ))

    async def _on_progress(event: Event) -> None:
        d = event.data
        console.print(
            f"[dim]gen {d['generation']:>3}  best {d['best_fitness']:.4f}  "
            f"avg {d['average_fitness']:.4f}  diversity {d['diversity']:.4f}[/dim]"
        )

    async def _evolve():
        await ctx.ensure_store()
        ctx.event_bus.subscribe("evolution.progress", _on_progress)
        try:
            return await ctx.engine.evolve_pattern(pattern_id, context, config)
        finally:
            ctx.event_bus.unsubscribe("evolution.progress", _on_progress)

    try:
        result = run_async(_evolve())
    except PatternNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    except (EvolutionFailed, EvolutionCancelled) as e:
        steps = len(e.partial_lineage)
        console.print(f"[red]Evolution aborted: {e} ({steps} lineage steps)[/red]")
        raise typer.Exit(code=1)

    console.print(
        f"\n[bold green]Evolved {pattern_id} -> {result.pattern.id}[/bold green] "
        f"(generation {result.generation}, fitness {result.fitness_score:.4f})"
    )

    metrics = Table(title="Fitness")
    metrics.add_column("Metric", style="cyan")
    metrics.add_column("Score", justify="right")
    for name, value in result.fitness.model_dump().items():
        metrics.add_row(name, f"{value:.4f}")
    console.print(metrics)

    for note in result.improvements:
        console.print(f"  - {note}")

    lineage = Table(title="Lineage")
    lineage.add_column("Gen", justify="right")
    lineage.add_column("Operation", style="blue")
    lineage.add_column("Delta", justify="right")
    lineage.add_column("Mutations", justify="right")
    for step in result.evolution_path:
        lineage.add_row(
            str(step.generation),
            step.operation,
            f"{step.fitness_improvement:+.4f}",
            str(len(step.mutations)),
        )
    console.print(lineage)


@app.command("version")
def version_cmd():
    """Show neuroevo version."""
    from neuroevo import __version__
    console.print(f"neuroevo v{__version__}")
