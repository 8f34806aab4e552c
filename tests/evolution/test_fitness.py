"""Tests for fitness evaluation and caching."""

import asyncio

import pytest

from neuroevo.memory.in_memory import InMemoryPatternStore
from neuroevo.evolution.fitness import (
    FITNESS_WEIGHTS,
    FitnessCache,
    FitnessEvaluator,
    FitnessMetrics,
    adjust_for_context,
    context_hash,
)
from neuroevo.evolution.simulation import PatternSimulator, SimulationOutcome
from neuroevo.types import (
    EnvironmentContext,
    EvolutionContext,
    PatternType,
    UserFeedback,
)


class CountingStore(InMemoryPatternStore):
    def __init__(self, patterns=None):
        super().__init__(patterns)
        self.similar_calls = 0
        self.type_calls = 0

    async def find_similar_patterns(self, embedding, k):
        self.similar_calls += 1
        return await super().find_similar_patterns(embedding, k)

    async def get_patterns_by_type(self, pattern_type):
        self.type_calls += 1
        return await super().get_patterns_by_type(pattern_type)


class FailingSimulator:
    def run(self, pattern, context):
        return SimulationOutcome(ok=False, error="diverged")


class CrashingSimulator(PatternSimulator):
    def simulate(self, pattern, context):
        raise RuntimeError("physics engine crashed")


class CrashingRunner:
    def run(self, pattern, context):
        raise RuntimeError("worker died")


def test_weights_sum_to_one():
    assert sum(FITNESS_WEIGHTS.values()) == pytest.approx(1.0)
    assert FitnessMetrics(**{k: 1.0 for k in FITNESS_WEIGHTS}).overall() == pytest.approx(1.0)


def test_context_hash_is_stable():
    a = EvolutionContext(level=3, objectives=["win"])
    b = EvolutionContext(level=3, objectives=["win"])
    assert context_hash(a) == context_hash(b)
    assert context_hash(a) != context_hash(EvolutionContext(level=4, objectives=["win"]))


def test_context_boosts_then_clamp():
    metrics = FitnessMetrics(
        accuracy=0.5, efficiency=0.4, adaptability=0.5, stability=0.5,
        emergent_behavior=0.5, user_satisfaction=0.5,
    )
    env = EnvironmentContext(complexity=0.9, dynamism=0.8, time_constraints=0.9, competitive_level=0.7)
    adjusted = adjust_for_context(metrics, env)

    assert adjusted.efficiency == pytest.approx(0.6)
    assert adjusted.accuracy == pytest.approx(0.65)
    assert adjusted.stability == pytest.approx(0.4)
    assert adjusted.emergent_behavior == pytest.approx(0.65)
    assert adjusted.user_satisfaction == pytest.approx(0.6)
    assert adjusted.adaptability == 1.0  # 0.5 * 1.5 * 1.4, clamped


def test_boosts_below_thresholds_do_nothing():
    metrics = FitnessMetrics(accuracy=0.5, efficiency=0.5)
    env = EnvironmentContext(complexity=0.8, dynamism=0.7, time_constraints=0.8, competitive_level=0.6)
    assert adjust_for_context(metrics, env) == metrics


@pytest.mark.asyncio
async def test_metrics_bounded_under_maximal_boosts(pattern_factory):
    pattern = pattern_factory(
        "p", accuracy=1.0, efficiency=1.0, adaptability=1.0, stability=1.0,
    )
    ctx = EvolutionContext(
        environment=EnvironmentContext(
            complexity=1.0, dynamism=1.0, uncertainty=1.0,
            time_constraints=1.0, competitive_level=1.0,
        ),
        user_feedback=[UserFeedback(pattern_id="p", rating=5.0)],
    )
    evaluator = FitnessEvaluator(InMemoryPatternStore())
    metrics = await evaluator.evaluate(pattern, ctx)

    for name in FITNESS_WEIGHTS:
        assert 0.0 <= getattr(metrics, name) <= 1.0
    assert 0.0 <= metrics.overall() <= 1.0


@pytest.mark.asyncio
async def test_novelty_is_one_without_neighbors(base_pattern):
    evaluator = FitnessEvaluator(InMemoryPatternStore())
    assert await evaluator.novelty(base_pattern) == 1.0


@pytest.mark.asyncio
async def test_novelty_is_zero_against_itself(base_pattern):
    evaluator = FitnessEvaluator(InMemoryPatternStore([base_pattern]))
    assert await evaluator.novelty(base_pattern) == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_diversity_is_one_when_alone(base_pattern, pattern_factory):
    other_type = pattern_factory("opt", pattern_type=PatternType.OPTIMIZATION)
    evaluator = FitnessEvaluator(InMemoryPatternStore([base_pattern, other_type]))
    assert await evaluator.diversity(base_pattern) == 1.0


@pytest.mark.asyncio
async def test_diversity_measures_same_type_peers(base_pattern, pattern_factory):
    twin = pattern_factory("twin")
    evaluator = FitnessEvaluator(InMemoryPatternStore([base_pattern, twin]))
    assert await evaluator.diversity(base_pattern) == pytest.approx(0.0)


def test_user_satisfaction(base_pattern):
    evaluator = FitnessEvaluator(InMemoryPatternStore())
    assert evaluator.user_satisfaction(base_pattern, EvolutionContext()) == 0.5

    ctx = EvolutionContext(user_feedback=[
        UserFeedback(pattern_id="base", rating=5.0),
        UserFeedback(pattern_id="base", rating=3.0),
        UserFeedback(pattern_id="someone-else", rating=0.0),
    ])
    assert evaluator.user_satisfaction(base_pattern, ctx) == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_simulation_failure_scores_zero(base_pattern):
    evaluator = FitnessEvaluator(InMemoryPatternStore(), simulator=FailingSimulator())
    metrics = await evaluator.evaluate(base_pattern, EvolutionContext())
    assert metrics.emergent_behavior == 0.0


@pytest.mark.asyncio
async def test_time_constraints_raise_efficiency_contribution(pattern_factory):
    pattern = pattern_factory("p", accuracy=0.0, efficiency=0.4)
    evaluator = FitnessEvaluator(InMemoryPatternStore())
    relaxed = await evaluator.evaluate(
        pattern, EvolutionContext(environment=EnvironmentContext(time_constraints=0.0))
    )
    rushed = await evaluator.evaluate(
        pattern, EvolutionContext(environment=EnvironmentContext(time_constraints=0.9))
    )

    assert relaxed.efficiency == pytest.approx(0.4)
    assert rushed.efficiency == pytest.approx(0.6)
    assert rushed.efficiency * FITNESS_WEIGHTS["efficiency"] > relaxed.efficiency * FITNESS_WEIGHTS["efficiency"]


@pytest.mark.asyncio
async def test_cache_hit_skips_lookups(base_pattern):
    store = CountingStore([base_pattern])
    evaluator = FitnessEvaluator(store)
    ctx = EvolutionContext(level=1)

    first = await evaluator.evaluate(base_pattern, ctx)
    calls = (store.similar_calls, store.type_calls)
    second = await evaluator.evaluate(base_pattern, ctx)

    assert first == second
    assert (store.similar_calls, store.type_calls) == calls
    assert evaluator.cache.hits == 1
    assert evaluator.cache.misses == 1


@pytest.mark.asyncio
async def test_different_context_is_a_cache_miss(base_pattern):
    evaluator = FitnessEvaluator(InMemoryPatternStore([base_pattern]))
    await evaluator.evaluate(base_pattern, EvolutionContext(level=1))
    await evaluator.evaluate(base_pattern, EvolutionContext(level=2))
    assert evaluator.cache.misses == 2


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_computation(base_pattern):
    store = CountingStore([base_pattern])
    evaluator = FitnessEvaluator(store)
    ctx = EvolutionContext()

    a, b = await asyncio.gather(
        evaluator.evaluate(base_pattern, ctx),
        evaluator.evaluate(base_pattern, ctx),
    )
    assert a == b
    assert store.similar_calls == 1
    assert evaluator.cache.misses == 1


@pytest.mark.asyncio
async def test_evaluate_many_keeps_order(pattern_factory):
    patterns = [pattern_factory(f"p{i}", accuracy=i / 10) for i in range(6)]
    evaluator = FitnessEvaluator(InMemoryPatternStore(patterns), max_concurrency=2)
    results = await evaluator.evaluate_many(patterns, EvolutionContext())
    assert [r.accuracy for r in results] == pytest.approx([i / 10 for i in range(6)])


@pytest.mark.asyncio
async def test_cache_evicts_oldest():
    cache = FitnessCache(max_size=2)

    async def compute():
        return FitnessMetrics(accuracy=0.3)

    for key in ("a", "b", "c"):
        await cache.get_or_compute(key, compute)

    assert len(cache) == 2
    assert cache.peek("a") is None
    assert cache.peek("c") == FitnessMetrics(accuracy=0.3)


@pytest.mark.asyncio
async def test_failed_computation_is_not_cached():
    cache = FitnessCache()
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("store offline")
        return FitnessMetrics(accuracy=0.2)

    with pytest.raises(RuntimeError):
        await cache.get_or_compute("k", flaky)
    assert (await cache.get_or_compute("k", flaky)).accuracy == 0.2


@pytest.mark.asyncio
async def test_simulator_crash_scores_zero(base_pattern):
    evaluator = FitnessEvaluator(InMemoryPatternStore(), simulator=CrashingSimulator())
    metrics = await evaluator.evaluate(base_pattern, EvolutionContext())
    assert metrics.emergent_behavior == 0.0
    assert metrics.accuracy == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_simulator_run_crash_scores_zero(base_pattern):
    evaluator = FitnessEvaluator(InMemoryPatternStore(), simulator=CrashingRunner())
    metrics = await evaluator.evaluate(base_pattern, EvolutionContext())
    assert metrics.emergent_behavior == 0.0


def test_simulator_run_reports_unexpected_errors(base_pattern):
    outcome = CrashingSimulator().run(base_pattern, EvolutionContext())
    assert outcome.ok is False
    assert "physics engine crashed" in outcome.error


@pytest.mark.asyncio
async def test_waiter_recomputes_when_owner_is_cancelled():
    cache = FitnessCache()
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)
        return FitnessMetrics(accuracy=0.1)

    async def fast():
        return FitnessMetrics(accuracy=0.7)

    owner = asyncio.create_task(cache.get_or_compute("k", slow))
    await started.wait()
    waiter = asyncio.create_task(cache.get_or_compute("k", fast))
    await asyncio.sleep(0)

    owner.cancel()
    result = await asyncio.wait_for(waiter, timeout=1)

    assert result.accuracy == 0.7
    assert cache.peek("k") == FitnessMetrics(accuracy=0.7)
    with pytest.raises(asyncio.CancelledError):
        await owner


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_owner_running():
    cache = FitnessCache()
    started = asyncio.Event()
    release = asyncio.Event()

    async def gated():
        started.set()
        await release.wait()
        return FitnessMetrics(accuracy=0.4)

    owner = asyncio.create_task(cache.get_or_compute("k", gated))
    await started.wait()
    waiter = asyncio.create_task(cache.get_or_compute("k", gated))
    await asyncio.sleep(0)

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    release.set()

    assert (await owner).accuracy == 0.4
