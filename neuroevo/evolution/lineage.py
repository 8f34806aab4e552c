"""Lineage — the append-only record of how a pattern was derived."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Iterator

from pydantic import BaseModel, Field

from neuroevo.evolution.genotype import diff_genotypes
from neuroevo.evolution.fitness import FITNESS_WEIGHTS
from neuroevo.types import utcnow

if TYPE_CHECKING:
    from neuroevo.evolution.population import Individual


class EvolutionStep(BaseModel):
    """One entry in a run's lineage. Never modified once appended."""

    generation: int
    operation: str
    parent_ids: tuple[str, ...] = ()
    fitness_improvement: float = 0.0
    mutations: tuple[str, ...] = ()
    timestamp: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}


class Lineage:
    """Append-only log of evolution steps for a single run."""

    def __init__(self) -> None:
        self._steps: list[EvolutionStep] = []

    def append(self, step: EvolutionStep) -> None:
        if self._steps and step.generation < self._steps[-1].generation:
            raise ValueError(
                f"Lineage is ordered by generation: {step.generation} "
                f"after {self._steps[-1].generation}"
            )
        self._steps.append(step)

    @property
    def steps(self) -> list[EvolutionStep]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[EvolutionStep]:
        return iter(list(self._steps))


def summarize_improvements(seed: Individual, winner: Individual) -> list[str]:
    """Diff the seed and the winner into human-readable improvement notes."""
    if winner.phenotype.id == seed.phenotype.id:
        return ["No candidate outperformed the base pattern"]

    notes = [
        f"Overall fitness {seed.overall_fitness:.3f} -> {winner.overall_fitness:.3f}"
    ]
    for name in FITNESS_WEIGHTS:
        before = getattr(seed.fitness, name)
        after = getattr(winner.fitness, name)
        if after > before + 1e-9:
            notes.append(f"{name} improved {before:.3f} -> {after:.3f}")
    structural = diff_genotypes(seed.genotype, winner.genotype)
    if structural:
        notes.append("Structural changes: " + ", ".join(structural))
    return notes
