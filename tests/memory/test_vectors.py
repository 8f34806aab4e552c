"""Tests for similarity measures."""

import pytest

from neuroevo.memory.vectors import (
    cosine_distance,
    cosine_similarity,
    mean_pairwise_distance,
    structural_difference,
)
from neuroevo.types import PatternMetadata


def test_cosine_identical_and_opposite():
    assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_cosine_zero_vector_scores_zero():
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
    assert cosine_similarity([], [1.0]) == 0.0


def test_cosine_distance_range():
    assert cosine_distance([1.0, 0.0], [1.0, 0.0]) == pytest.approx(0.0)
    assert cosine_distance([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(1.0)


def test_mean_pairwise_distance():
    assert mean_pairwise_distance([]) == 0.0
    assert mean_pairwise_distance([[1.0, 0.0]]) == 0.0
    # pairs: (a,b)=0.5, (a,c)=1.0, (b,c)=0.5
    value = mean_pairwise_distance([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]])
    assert value == pytest.approx(2.0 / 3.0)


def test_structural_difference_self_is_zero(pattern_factory):
    p = pattern_factory("a")
    assert structural_difference(p, p) == pytest.approx(0.0)


def test_structural_difference_grows_with_changes(pattern_factory):
    a = pattern_factory("a")
    resized = a.model_copy(update={
        "metadata": a.metadata.model_copy(update={
            "architecture": {"family": "feedforward", "layers": [32]},
        }),
    })
    rebuilt = a.model_copy(update={
        "embedding": [-x for x in a.embedding],
        "metadata": PatternMetadata(
            architecture={"family": "graph", "num_nodes": 4},
            hyperparameters={"momentum": 0.5},
            activations=["gelu"],
        ),
    })

    small = structural_difference(a, resized)
    large = structural_difference(a, rebuilt)
    assert 0.0 < small < large <= 1.0
