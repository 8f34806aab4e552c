"""Similarity measures over patterns and their embeddings."""

from __future__ import annotations

import math
from typing import Any, Iterable

from neuroevo.types import NeuralPattern


def cosine_similarity(a: Iterable[float], b: Iterable[float]) -> float:
    """Cosine similarity in [-1, 1]. Zero vectors score 0.

    Vectors of different length are compared over their common prefix.
    """
    dot = 0.0
    mag_a = 0.0
    mag_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        mag_a += x * x
        mag_b += y * y
    if mag_a == 0.0 or mag_b == 0.0:
        return 0.0
    sim = dot / (math.sqrt(mag_a) * math.sqrt(mag_b))
    return max(-1.0, min(1.0, sim))


def cosine_distance(a: Iterable[float], b: Iterable[float]) -> float:
    """Cosine similarity rescaled to a distance in [0, 1]."""
    return (1.0 - cosine_similarity(a, b)) / 2.0


def _jaccard_distance(a: set, b: set) -> float:
    if not a and not b:
        return 0.0
    return 1.0 - len(a & b) / len(a | b)


def _architecture_distance(a: Any, b: Any) -> float:
    if a == b:
        return 0.0
    fam_a = a.get("family") if isinstance(a, dict) else a
    fam_b = b.get("family") if isinstance(b, dict) else b
    # Same family, different sizing
    return 0.5 if fam_a == fam_b else 1.0


def _hyperparameter_distance(a: dict[str, float], b: dict[str, float]) -> float:
    keys = set(a) | set(b)
    if not keys:
        return 0.0
    total = 0.0
    for key in keys:
        if key not in a or key not in b:
            total += 1.0
            continue
        x, y = a[key], b[key]
        scale = max(abs(x), abs(y))
        total += abs(x - y) / scale if scale > 0 else 0.0
    return min(total / len(keys), 1.0)


def structural_difference(a: NeuralPattern, b: NeuralPattern) -> float:
    """How differently two patterns are built, in [0, 1].

    Mean of five components: architecture, hyperparameters, activation
    set, connection topology and embedding direction.
    """
    parts = [
        _architecture_distance(a.metadata.architecture, b.metadata.architecture),
        _hyperparameter_distance(a.metadata.hyperparameters, b.metadata.hyperparameters),
        _jaccard_distance(set(a.metadata.activations), set(b.metadata.activations)),
        _jaccard_distance(
            {(c.source, c.target) for c in a.metadata.connections},
            {(c.source, c.target) for c in b.metadata.connections},
        ),
    ]
    if a.embedding and b.embedding:
        parts.append(cosine_distance(a.embedding, b.embedding))
    return sum(parts) / len(parts)


def mean_pairwise_distance(embeddings: list[list[float]]) -> float:
    """Average cosine distance over all pairs. Fewer than two vectors -> 0."""
    n = len(embeddings)
    if n < 2:
        return 0.0
    total = 0.0
    pairs = 0
    for i in range(n):
        for j in range(i + 1, n):
            total += cosine_distance(embeddings[i], embeddings[j])
            pairs += 1
    return total / pairs
