"""Tests for environment-driven settings."""

from pathlib import Path

from neuroevo.config import NeuroevoSettings


def test_defaults():
    s = NeuroevoSettings()
    assert s.population_size == 50
    assert s.mutation_rate == 0.1
    assert s.fitness_threshold == 0.95
    assert s.adaptation_interval == 10
    assert s.run_timeout_seconds is None
    assert s.db_path == Path(".neuroevo/patterns.db")


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("NEUROEVO_POPULATION_SIZE", "20")
    monkeypatch.setenv("NEUROEVO_RUN_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("NEUROEVO_DB_PATH", "/tmp/elsewhere.db")

    s = NeuroevoSettings()
    assert s.population_size == 20
    assert s.run_timeout_seconds == 2.5
    assert s.db_path == Path("/tmp/elsewhere.db")
