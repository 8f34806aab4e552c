"""Genotype — the evolvable encoding behind every pattern.

A genotype holds five fields: architecture, hyperparameters, weight
samples, activation set and connection list. The architecture is a
tagged union with one variant per network family so operators can
perturb it structurally instead of guessing at a free-form dict.

Conversion is pure in both directions:

    extract_genotype(pattern)               -> Genotype
    genotype_to_pattern(genotype, template) -> NeuralPattern

and ``extract_genotype(genotype_to_pattern(g, t)) == g`` for every valid
genotype ``g``.
"""

from __future__ import annotations

import hashlib
import json
import math
import random
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from neuroevo.exceptions import GenotypeConversionError
from neuroevo.types import (
    Connection,
    NeuralPattern,
    PatternEvolution,
    PatternPerformance,
)

KNOWN_ACTIVATIONS = (
    "relu", "sigmoid", "tanh", "gelu", "swish", "elu", "leaky_relu", "softplus",
)
DEFAULT_ACTIVATIONS = ["relu", "sigmoid"]
DEFAULT_EMBEDDING_DIM = 16

# (low, high, log_scale)
HYPERPARAMETER_BOUNDS: dict[str, tuple[float, float, bool]] = {
    "learning_rate": (1e-5, 1.0, True),
    "dropout": (0.0, 0.9, False),
    "momentum": (0.0, 0.999, False),
    "weight_decay": (0.0, 0.1, False),
}
DEFAULT_HYPERPARAMETERS = {
    "learning_rate": 0.001,
    "dropout": 0.1,
    "momentum": 0.9,
    "weight_decay": 0.0001,
}

# Share of a child's performance drawn from its own structure; the rest
# is inherited from the template it was derived from.
TRAIT_BLEND = 0.2
EMBEDDING_DRIFT = 0.15


# ── Architecture variants ───────────────────────────────────────


class FeedforwardArchitecture(BaseModel):
    family: Literal["feedforward"] = "feedforward"
    layers: list[int] = Field(default_factory=lambda: [16, 8])

    def parameter_count(self) -> int:
        sizes = self.layers
        weights = sum(a * b for a, b in zip(sizes, sizes[1:]))
        return weights + sum(sizes)

    def unit_count(self) -> int:
        return sum(self.layers)

    def problems(self) -> list[str]:
        errors = []
        if not self.layers:
            errors.append("feedforward architecture needs at least one layer")
        if len(self.layers) > 32:
            errors.append("feedforward architecture exceeds 32 layers")
        if any(size <= 0 or size > 4096 for size in self.layers):
            errors.append("layer sizes must be in 1..4096")
        return errors


class RecurrentArchitecture(BaseModel):
    family: Literal["recurrent"] = "recurrent"
    cell: Literal["rnn", "gru", "lstm"] = "lstm"
    hidden_size: int = 32
    num_layers: int = 1

    def parameter_count(self) -> int:
        gates = {"rnn": 1, "gru": 3, "lstm": 4}[self.cell]
        h = self.hidden_size
        return self.num_layers * gates * (2 * h * h + h)

    def unit_count(self) -> int:
        return self.hidden_size * self.num_layers

    def problems(self) -> list[str]:
        errors = []
        if not 0 < self.hidden_size <= 4096:
            errors.append("hidden_size must be in 1..4096")
        if not 1 <= self.num_layers <= 16:
            errors.append("num_layers must be in 1..16")
        return errors


class AttentionArchitecture(BaseModel):
    family: Literal["attention"] = "attention"
    num_heads: int = 4
    model_dim: int = 64
    num_layers: int = 2

    def parameter_count(self) -> int:
        d = self.model_dim
        return self.num_layers * (4 * d * d + 8 * d * d)

    def unit_count(self) -> int:
        return self.num_heads * self.num_layers

    def problems(self) -> list[str]:
        errors = []
        if self.num_heads <= 0 or self.model_dim <= 0:
            errors.append("num_heads and model_dim must be positive")
        elif self.model_dim % self.num_heads:
            errors.append("model_dim must be divisible by num_heads")
        if not 1 <= self.num_layers <= 48:
            errors.append("num_layers must be in 1..48")
        return errors


class GraphArchitecture(BaseModel):
    family: Literal["graph"] = "graph"
    num_nodes: int = 8
    message_passes: int = 2

    def parameter_count(self) -> int:
        return self.num_nodes * self.num_nodes * self.message_passes

    def unit_count(self) -> int:
        return self.num_nodes

    def problems(self) -> list[str]:
        errors = []
        if not 2 <= self.num_nodes <= 1024:
            errors.append("num_nodes must be in 2..1024")
        if not 1 <= self.message_passes <= 16:
            errors.append("message_passes must be in 1..16")
        return errors


Architecture = Annotated[
    Union[
        FeedforwardArchitecture,
        RecurrentArchitecture,
        AttentionArchitecture,
        GraphArchitecture,
    ],
    Field(discriminator="family"),
]
ARCHITECTURE_FAMILIES = ("feedforward", "recurrent", "attention", "graph")
_architecture_adapter: TypeAdapter = TypeAdapter(Architecture)


def default_architecture(family: str = "feedforward") -> Any:
    return _architecture_adapter.validate_python({"family": family})


def parse_architecture(raw: Any) -> Any:
    """Read the architecture stored in pattern metadata.

    Accepts None or "default" (feedforward), a bare family name, or a
    full architecture dict.
    """
    if raw is None or raw == "default":
        return FeedforwardArchitecture()
    if isinstance(raw, str):
        if raw not in ARCHITECTURE_FAMILIES:
            raise GenotypeConversionError(f"Unknown architecture family: {raw!r}")
        return default_architecture(raw)
    try:
        return _architecture_adapter.validate_python(raw)
    except ValidationError as e:
        raise GenotypeConversionError(f"Malformed architecture: {e}") from e


# ── Genotype ────────────────────────────────────────────────────


class Genotype(BaseModel):
    """The mutable genetic encoding of one candidate pattern."""

    architecture: Architecture = Field(default_factory=FeedforwardArchitecture)
    hyperparameters: dict[str, float] = Field(default_factory=dict)
    weights: list[float] = Field(default_factory=list)
    activations: list[str] = Field(default_factory=lambda: list(DEFAULT_ACTIVATIONS))
    connections: list[Connection] = Field(default_factory=list)

    def problems(self) -> list[str]:
        """Everything that would make this genotype produce an invalid pattern."""
        errors = list(self.architecture.problems())
        if not self.activations:
            errors.append("activation set is empty")
        unknown = [a for a in self.activations if a not in KNOWN_ACTIVATIONS]
        if unknown:
            errors.append(f"unknown activations: {', '.join(unknown)}")
        if any(not math.isfinite(w) for w in self.weights):
            errors.append("weights contain non-finite values")
        if any(not math.isfinite(v) for v in self.hyperparameters.values()):
            errors.append("hyperparameters contain non-finite values")
        if not self.architecture.problems():
            units = self.architecture.unit_count()
            for conn in self.connections:
                if not (0 <= conn.source < units and 0 <= conn.target < units):
                    errors.append(
                        f"connection {conn.source}->{conn.target} outside {units} units"
                    )
                    break
        return errors

    def fingerprint(self) -> str:
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode()).hexdigest()


def extract_genotype(pattern: NeuralPattern) -> Genotype:
    """Pull the evolvable encoding out of a pattern."""
    meta = pattern.metadata
    return Genotype(
        architecture=parse_architecture(meta.architecture),
        hyperparameters=dict(meta.hyperparameters),
        weights=list(pattern.training_data.samples),
        activations=list(meta.activations) or list(DEFAULT_ACTIVATIONS),
        connections=[c.model_copy() for c in meta.connections],
    )


def genotype_to_pattern(genotype: Genotype, template: NeuralPattern) -> NeuralPattern:
    """Build the phenotype for a genotype, deriving everything else from template.

    Deterministic: the same (genotype, template) pair always yields the
    same pattern, identity included. Raises GenotypeConversionError
    instead of emitting an invalid pattern.
    """
    errors = genotype.problems()
    if errors:
        raise GenotypeConversionError("; ".join(errors))

    fingerprint = genotype.fingerprint()
    pattern_id = hashlib.sha256(f"{template.id}:{fingerprint}".encode()).hexdigest()[:12]
    generation = template.generation + 1

    metadata = template.metadata.model_copy(update={
        "architecture": genotype.architecture.model_dump(),
        "hyperparameters": dict(genotype.hyperparameters),
        "activations": list(genotype.activations),
        "connections": [c.model_copy() for c in genotype.connections],
        "complexity": _complexity(genotype),
    })
    training_data = template.training_data.model_copy(update={
        "samples": list(genotype.weights),
    })
    return template.model_copy(update={
        "id": pattern_id,
        "version": _next_version(template.version),
        "embedding": _derive_embedding(template.embedding, fingerprint),
        "performance": estimate_performance(genotype, template.performance),
        "metadata": metadata,
        "training_data": training_data,
        "evolution": PatternEvolution(
            generation=generation,
            parent_patterns=[template.id],
        ),
    })


# ── Derived phenotype traits ────────────────────────────────────


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _complexity(genotype: Genotype) -> float:
    return _clamp(math.log10(genotype.architecture.parameter_count() + 1) / 7.0)


def trait_scores(genotype: Genotype) -> dict[str, float]:
    """What the structure alone suggests about each performance axis."""
    params = genotype.architecture.parameter_count()
    hp = genotype.hyperparameters
    lr = hp.get("learning_rate", DEFAULT_HYPERPARAMETERS["learning_rate"])
    lr_score = math.exp(-((math.log10(max(lr, 1e-12)) + 3.0) ** 2) / 2.0)  # peaks at 1e-3
    capacity = _clamp(math.log10(params + 1) / 6.0)

    dropout = hp.get("dropout", DEFAULT_HYPERPARAMETERS["dropout"])
    variety = min(len(set(genotype.activations)) / 4.0, 1.0)

    if len(genotype.weights) > 1:
        mean = sum(genotype.weights) / len(genotype.weights)
        var = sum((w - mean) ** 2 for w in genotype.weights) / len(genotype.weights)
        weight_calm = 1.0 / (1.0 + math.sqrt(var))
    else:
        weight_calm = 0.5
    momentum = hp.get("momentum", DEFAULT_HYPERPARAMETERS["momentum"])

    return {
        "accuracy": _clamp(0.5 * capacity + 0.5 * lr_score),
        "efficiency": _clamp(1.0 - math.log10(params + 1) / 7.0),
        "adaptability": _clamp(0.6 * variety + 0.4 * min(dropout / 0.3, 1.0)),
        "stability": _clamp(0.5 * weight_calm + 0.5 * min(momentum, 0.99)),
    }


def estimate_performance(
    genotype: Genotype, inherited: PatternPerformance
) -> PatternPerformance:
    traits = trait_scores(genotype)
    update = {
        name: _clamp((1.0 - TRAIT_BLEND) * getattr(inherited, name) + TRAIT_BLEND * score)
        for name, score in traits.items()
    }
    return inherited.model_copy(update=update)


def _derive_embedding(base: list[float], fingerprint: str) -> list[float]:
    dim = len(base) or DEFAULT_EMBEDDING_DIM
    rng = random.Random(int(fingerprint[:16], 16))
    direction = [rng.gauss(0.0, 1.0) for _ in range(dim)]
    norm = math.sqrt(sum(d * d for d in direction)) or 1.0
    scale = math.sqrt(sum(b * b for b in base)) or 1.0
    if not base:
        base = [0.0] * dim
    return [b + EMBEDDING_DRIFT * scale * d / norm for b, d in zip(base, direction)]


def _next_version(version: str) -> str:
    parts = version.split(".")
    if parts and parts[-1].isdigit():
        parts[-1] = str(int(parts[-1]) + 1)
        return ".".join(parts)
    return f"{version}.1"


def diff_genotypes(before: Genotype, after: Genotype) -> list[str]:
    """Human-readable tags for every field that differs."""
    tags = []
    if before.architecture != after.architecture:
        if before.architecture.family != after.architecture.family:
            tags.append(
                f"architecture:{before.architecture.family}->{after.architecture.family}"
            )
        else:
            tags.append(f"architecture:{after.architecture.family}:resized")
    changed = sorted(
        k for k in set(before.hyperparameters) | set(after.hyperparameters)
        if before.hyperparameters.get(k) != after.hyperparameters.get(k)
    )
    tags.extend(f"hyperparameters.{k}" for k in changed)
    if before.weights != after.weights:
        tags.append(f"weights:{len(before.weights)}->{len(after.weights)}")
    added = sorted(set(after.activations) - set(before.activations))
    removed = sorted(set(before.activations) - set(after.activations))
    tags.extend(f"activations:+{a}" for a in added)
    tags.extend(f"activations:-{a}" for a in removed)
    if before.connections != after.connections:
        tags.append(f"connections:{len(before.connections)}->{len(after.connections)}")
    return tags
