"""Tests for per-run evolution configuration."""

import pytest
from pydantic import ValidationError

from neuroevo.config import NeuroevoSettings
from neuroevo.evolution.config import EvolutionConfig


def test_defaults():
    config = EvolutionConfig()
    assert config.population_size == 50
    assert config.mutation_rate == 0.1
    assert config.crossover_rate == 0.8
    assert config.elitism_rate == 0.2
    assert config.max_generations == 100
    assert config.fitness_threshold == 0.95


def test_from_settings():
    s = NeuroevoSettings(population_size=12, max_generations=7, run_timeout_seconds=3.0)
    config = EvolutionConfig.from_settings(s)
    assert config.population_size == 12
    assert config.max_generations == 7
    assert config.timeout_seconds == 3.0


def test_merge_accepts_camel_and_snake_case():
    merged = EvolutionConfig().merged({"populationSize": 10, "max_generations": 5, "noveltyWeight": 0.5})
    assert merged.population_size == 10
    assert merged.max_generations == 5
    assert merged.novelty_weight == 0.5
    assert merged.mutation_rate == 0.1


def test_merge_without_overrides_copies():
    base = EvolutionConfig(seed=3)
    merged = base.merged(None)
    assert merged == base
    assert merged is not base


def test_merge_rejects_unknown_keys():
    with pytest.raises(ValueError, match="Unknown evolution config field"):
        EvolutionConfig().merged({"warpFactor": 9})


@pytest.mark.parametrize("overrides", [
    {"mutationRate": 1.5},
    {"elitismRate": -0.1},
    {"populationSize": 1},
    {"maxGenerations": -1},
])
def test_merge_validates(overrides):
    with pytest.raises(ValidationError):
        EvolutionConfig().merged(overrides)
