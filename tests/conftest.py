"""Shared test fixtures — pattern factories and pattern stores."""

from __future__ import annotations

import pytest

from neuroevo.memory.in_memory import InMemoryPatternStore
from neuroevo.types import (
    Connection,
    NeuralPattern,
    PatternMetadata,
    PatternPerformance,
    PatternType,
    TrainingData,
)


def build_pattern(
    pattern_id: str = "base",
    embedding: list[float] | None = None,
    pattern_type: PatternType = PatternType.COORDINATION,
    accuracy: float = 0.5,
    efficiency: float = 0.5,
    **performance: float,
) -> NeuralPattern:
    return NeuralPattern(
        id=pattern_id,
        name=f"pattern-{pattern_id}",
        type=pattern_type,
        embedding=embedding if embedding is not None else [1.0, 0.5, 0.0, 0.25, 0.1, 0.0, 0.3, 0.2],
        performance=PatternPerformance(accuracy=accuracy, efficiency=efficiency, **performance),
        metadata=PatternMetadata(
            creator="tests",
            architecture={"family": "feedforward", "layers": [8, 4]},
            hyperparameters={"learning_rate": 0.001, "dropout": 0.1},
            activations=["relu", "tanh"],
            connections=[Connection(source=0, target=3, weight=0.5)],
        ),
        training_data=TrainingData(samples=[0.1, -0.2, 0.3, 0.05]),
    )


@pytest.fixture
def pattern_factory():
    return build_pattern


@pytest.fixture
def base_pattern():
    return build_pattern()


@pytest.fixture
def store(base_pattern):
    return InMemoryPatternStore([base_pattern])
