"""Core types shared across all neuroevo subsystems."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeAlias

from pydantic import BaseModel, Field

# ── ID Types ──────────────────────────────────────────────────────────────────

PatternId: TypeAlias = str
IndividualId: TypeAlias = str
RunId: TypeAlias = str


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Patterns ──────────────────────────────────────────────────────────────────


class PatternType(str, Enum):
    COORDINATION = "coordination"
    OPTIMIZATION = "optimization"
    ADAPTATION = "adaptation"
    LEARNING = "learning"
    EMERGENCE = "emergence"


class PatternPerformance(BaseModel):
    """Measured behavior of a pattern. Scores are 0..1 unless noted."""

    accuracy: float = 0.0
    efficiency: float = 0.0
    adaptability: float = 0.0
    stability: float = 0.0
    success_rate: float = 0.0
    avg_execution_time: float = 0.0  # ms
    memory_usage: float = 0.0  # MB
    score_improvement: float = 0.0


class Connection(BaseModel):
    """A directed edge between two units of a pattern's network."""

    source: int
    target: int
    weight: float = 1.0


class PatternMetadata(BaseModel):
    creator: str = ""
    tags: list[str] = Field(default_factory=list)
    description: str = ""
    usage_count: int = 0
    rating: float = 0.0
    complexity: float = 0.0
    # Evolvable structure, see neuroevo.evolution.genotype
    architecture: dict[str, Any] | str | None = None
    hyperparameters: dict[str, float] = Field(default_factory=dict)
    activations: list[str] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)


class TrainingData(BaseModel):
    samples: list[float] = Field(default_factory=list)  # weight samples
    validation_split: float = 0.2
    epochs: int = 10
    batch_size: int = 32
    learning_rate: float = 0.001


class PatternEvolution(BaseModel):
    """Where a pattern came from."""

    generation: int = 0
    parent_patterns: list[PatternId] = Field(default_factory=list)
    mutations: list[str] = Field(default_factory=list)
    fitness_score: float = 0.0
    survival_rate: float = 0.0


class NeuralPattern(BaseModel):
    """A versioned, embeddable descriptor of coordination behavior.

    Never mutated in place: every change produces a new pattern with a
    new identity (use ``model_copy(update=...)``).
    """

    id: PatternId = Field(default_factory=new_id)
    name: str = ""
    type: PatternType = PatternType.COORDINATION
    version: str = "1.0.0"
    embedding: list[float] = Field(default_factory=list)
    performance: PatternPerformance = Field(default_factory=PatternPerformance)
    metadata: PatternMetadata = Field(default_factory=PatternMetadata)
    training_data: TrainingData = Field(default_factory=TrainingData)
    evolution: PatternEvolution = Field(default_factory=PatternEvolution)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    @property
    def generation(self) -> int:
        return self.evolution.generation


# ── Evolution Context ────────────────────────────────────────────────────────


class EnvironmentContext(BaseModel):
    complexity: float = Field(default=0.0, ge=0.0, le=1.0)
    dynamism: float = Field(default=0.0, ge=0.0, le=1.0)
    uncertainty: float = Field(default=0.0, ge=0.0, le=1.0)
    time_constraints: float = Field(default=0.0, ge=0.0, le=1.0)
    resource_constraints: dict[str, float] = Field(default_factory=dict)
    competitive_level: float = Field(default=0.0, ge=0.0, le=1.0)

    model_config = {"frozen": True}


class UserFeedback(BaseModel):
    pattern_id: PatternId
    rating: float = Field(ge=0.0, le=5.0)  # 0..5 stars
    comments: list[str] = Field(default_factory=list)
    usage_context: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}


class EvolutionContext(BaseModel):
    """Read-only input for one evolution run, built by the caller."""

    game_id: str | None = None
    level: int | None = None
    difficulty: str | None = None
    objectives: list[str] = Field(default_factory=list)
    constraints: list[dict[str, Any]] = Field(default_factory=list)
    environment: EnvironmentContext = Field(default_factory=EnvironmentContext)
    user_feedback: list[UserFeedback] = Field(default_factory=list)

    model_config = {"frozen": True}
