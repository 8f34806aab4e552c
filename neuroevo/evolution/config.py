"""Per-run evolution configuration."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from neuroevo.config import NeuroevoSettings, settings as default_settings


class EvolutionConfig(BaseModel):
    """Operator rates and stopping criteria for one evolution run.

    Overrides may use snake_case or the camelCase names callers from
    other runtimes send ("populationSize", "mutationRate", ...).
    """

    population_size: int = Field(default=50, ge=2)
    mutation_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    crossover_rate: float = Field(default=0.8, ge=0.0, le=1.0)
    elitism_rate: float = Field(default=0.2, ge=0.0, le=1.0)
    max_generations: int = Field(default=100, ge=0)
    fitness_threshold: float = Field(default=0.95, ge=0.0)
    tournament_size: int = Field(default=3, ge=1)
    diversity_weight: float = 0.2
    novelty_weight: float = 0.3
    stability_weight: float = 0.2
    adaptation_interval: int = Field(default=10, ge=1)
    timeout_seconds: float | None = None
    seed: int | None = None

    @classmethod
    def from_settings(cls, source: NeuroevoSettings | None = None) -> EvolutionConfig:
        s = source or default_settings
        return cls(
            population_size=s.population_size,
            mutation_rate=s.mutation_rate,
            crossover_rate=s.crossover_rate,
            elitism_rate=s.elitism_rate,
            max_generations=s.max_generations,
            fitness_threshold=s.fitness_threshold,
            tournament_size=s.tournament_size,
            adaptation_interval=s.adaptation_interval,
            timeout_seconds=s.run_timeout_seconds,
        )

    def merged(self, overrides: Mapping[str, Any] | EvolutionConfig | None) -> EvolutionConfig:
        """A validated copy with ``overrides`` applied."""
        if overrides is None:
            return self.model_copy()
        if isinstance(overrides, EvolutionConfig):
            return overrides.model_copy()
        by_alias = {to_camel(name): name for name in type(self).model_fields}
        values = self.model_dump()
        for key, value in overrides.items():
            name = by_alias.get(key, key)
            if name not in values:
                raise ValueError(f"Unknown evolution config field: {key}")
            values[name] = value
        return EvolutionConfig.model_validate(values)
