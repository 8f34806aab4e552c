"""Global configuration — loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class NeuroevoSettings(BaseSettings):
    # Evolution defaults (overridable per run)
    population_size: int = 50
    mutation_rate: float = 0.1
    crossover_rate: float = 0.8
    elitism_rate: float = 0.2
    max_generations: int = 100
    fitness_threshold: float = 0.95
    tournament_size: int = 3

    # Fitness evaluation
    novelty_neighbors: int = 10
    max_concurrent_evaluations: int = 8
    fitness_cache_size: int = 10_000

    # Adaptive retuning
    adaptation_interval: int = 10  # generations between retuning passes
    convergence_window: int = 5

    run_timeout_seconds: float | None = None  # None = no wall-clock budget

    db_path: Path = Path(".neuroevo/patterns.db")
    log_level: str = "INFO"
    event_history_limit: int = 500

    model_config = {"env_prefix": "NEUROEVO_"}


settings = NeuroevoSettings()
