"""Fitness evaluation — eight metrics per (pattern, context).

Base metrics come straight from the pattern's recorded performance;
novelty and diversity are measured against the pattern store;
emergent behavior comes from a bounded simulation; user satisfaction
from feedback in the context. Context boosts are applied last and every
metric is clamped back into [0, 1].

Results are cached by (pattern id, context hash). A cache hit skips
every store lookup and the simulation.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections import OrderedDict
from typing import Awaitable, Callable

from pydantic import BaseModel

from neuroevo.memory.base import PatternMemoryManager
from neuroevo.memory.vectors import cosine_similarity, structural_difference
from neuroevo.evolution.simulation import PatternSimulator
from neuroevo.types import EnvironmentContext, EvolutionContext, NeuralPattern

logger = logging.getLogger(__name__)

FITNESS_WEIGHTS: dict[str, float] = {
    "accuracy": 0.20,
    "efficiency": 0.15,
    "adaptability": 0.20,
    "stability": 0.10,
    "novelty": 0.10,
    "diversity": 0.10,
    "emergent_behavior": 0.10,
    "user_satisfaction": 0.05,
}


class FitnessMetrics(BaseModel):
    accuracy: float = 0.0
    efficiency: float = 0.0
    adaptability: float = 0.0
    stability: float = 0.0
    novelty: float = 0.0
    diversity: float = 0.0
    emergent_behavior: float = 0.0
    user_satisfaction: float = 0.0

    model_config = {"frozen": True}

    def overall(self) -> float:
        """Weighted scalar fitness in [0, 1]."""
        return sum(getattr(self, name) * w for name, w in FITNESS_WEIGHTS.items())

    def clamped(self) -> FitnessMetrics:
        return FitnessMetrics(**{
            name: max(0.0, min(1.0, getattr(self, name))) for name in FITNESS_WEIGHTS
        })


def overall_fitness(metrics: FitnessMetrics) -> float:
    return metrics.overall()


def context_hash(context: EvolutionContext) -> str:
    """Deterministic digest of everything in the context."""
    payload = json.dumps(context.model_dump(mode="json"), sort_keys=True)
    return hashlib.sha256(payload.encode()).hexdigest()[:16]


def adjust_for_context(metrics: FitnessMetrics, env: EnvironmentContext) -> FitnessMetrics:
    """Apply the environment's multiplicative boosts, then clamp to [0, 1]."""
    values = metrics.model_dump()
    if env.complexity > 0.8:
        values["adaptability"] *= 1.5
        values["emergent_behavior"] *= 1.3
    if env.dynamism > 0.7:
        values["stability"] *= 0.8
        values["adaptability"] *= 1.4
    if env.time_constraints > 0.8:
        values["efficiency"] *= 1.5
    if env.competitive_level > 0.6:
        values["accuracy"] *= 1.3
        values["user_satisfaction"] *= 1.2
    return FitnessMetrics(**values).clamped()


class FitnessCache:
    """Bounded (pattern, context) -> metrics cache.

    Concurrent requests for the same key share one computation: the
    first caller inserts a future, later callers await it. If the first
    caller is cancelled, waiters retry the computation instead of
    inheriting its cancellation. Oldest
    finished entries are evicted once ``max_size`` is exceeded.
    """

    def __init__(self, max_size: int = 10_000) -> None:
        self._entries: OrderedDict[str, asyncio.Future] = OrderedDict()
        self._max_size = max_size
        self.hits = 0
        self.misses = 0

    async def get_or_compute(
        self, key: str, compute: Callable[[], Awaitable[FitnessMetrics]]
    ) -> FitnessMetrics:
        while True:
            existing = self._entries.get(key)
            if existing is None:
                break
            self.hits += 1
            try:
                return await asyncio.shield(existing)
            except asyncio.CancelledError:
                # Owner was cancelled, not us: compute the key ourselves.
                if not existing.cancelled() or asyncio.current_task().cancelling():
                    raise

        self.misses += 1
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._entries[key] = future
        try:
            value = await compute()
        except asyncio.CancelledError:
            self._entries.pop(key, None)
            future.cancel()
            raise
        except Exception as e:
            self._entries.pop(key, None)
            future.set_exception(e)
            future.exception()  # waiters re-raise; mark as retrieved
            raise
        future.set_result(value)
        self._evict()
        return value

    def peek(self, key: str) -> FitnessMetrics | None:
        future = self._entries.get(key)
        if future is None or not future.done() or future.exception():
            return None
        return future.result()

    def _evict(self) -> None:
        while len(self._entries) > self._max_size:
            oldest_key = next(
                (k for k, f in self._entries.items() if f.done()), None
            )
            if oldest_key is None:
                return
            del self._entries[oldest_key]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class FitnessEvaluator:
    """Computes FitnessMetrics for patterns, many at a time.

    ``evaluate_many`` fans evaluation out across tasks bounded by
    ``max_concurrency``; the simulation itself runs in worker threads.
    """

    def __init__(
        self,
        memory: PatternMemoryManager,
        simulator: PatternSimulator | None = None,
        cache: FitnessCache | None = None,
        novelty_neighbors: int = 10,
        max_concurrency: int = 8,
    ) -> None:
        self._memory = memory
        self._simulator = simulator or PatternSimulator()
        self.cache = cache or FitnessCache()
        self._novelty_neighbors = novelty_neighbors
        self._max_concurrency = max(1, max_concurrency)

    async def evaluate(
        self, pattern: NeuralPattern, context: EvolutionContext
    ) -> FitnessMetrics:
        key = f"{pattern.id}_{context_hash(context)}"
        return await self.cache.get_or_compute(key, lambda: self._compute(pattern, context))

    async def evaluate_many(
        self, patterns: list[NeuralPattern], context: EvolutionContext
    ) -> list[FitnessMetrics]:
        """Evaluate in parallel; results keep the input order."""
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _one(pattern: NeuralPattern) -> FitnessMetrics:
            async with semaphore:
                return await self.evaluate(pattern, context)

        return list(await asyncio.gather(*(_one(p) for p in patterns)))

    async def _compute(
        self, pattern: NeuralPattern, context: EvolutionContext
    ) -> FitnessMetrics:
        perf = pattern.performance
        novelty, diversity, emergent = await asyncio.gather(
            self.novelty(pattern),
            self.diversity(pattern),
            self.emergent_behavior(pattern, context),
        )
        base = FitnessMetrics(
            accuracy=perf.accuracy or 0.0,
            efficiency=perf.efficiency or 0.0,
            adaptability=perf.adaptability or 0.0,
            stability=perf.stability or 0.0,
            novelty=novelty,
            diversity=diversity,
            emergent_behavior=emergent,
            user_satisfaction=self.user_satisfaction(pattern, context),
        )
        return adjust_for_context(base, context.environment)

    async def novelty(self, pattern: NeuralPattern) -> float:
        """1 - mean cosine similarity to the nearest stored patterns."""
        neighbors = await self._memory.find_similar_patterns(
            pattern.embedding, self._novelty_neighbors
        )
        if not neighbors:
            return 1.0
        sims = [cosine_similarity(pattern.embedding, n.embedding) for n in neighbors]
        return max(0.0, min(1.0, 1.0 - sum(sims) / len(sims)))

    async def diversity(self, pattern: NeuralPattern) -> float:
        """Mean structural difference from every other stored pattern of its type."""
        same_type = await self._memory.get_patterns_by_type(pattern.type)
        others = [p for p in same_type if p.id != pattern.id]
        if len(same_type) <= 1 or not others:
            return 1.0
        diffs = [structural_difference(pattern, p) for p in others]
        return sum(diffs) / len(diffs)

    async def emergent_behavior(
        self, pattern: NeuralPattern, context: EvolutionContext
    ) -> float:
        """Simulation score in [0, 1]; any simulator failure scores 0."""
        try:
            outcome = await asyncio.to_thread(self._simulator.run, pattern, context)
        except Exception as e:
            logger.debug("Simulator raised for %s: %s", pattern.id, e)
            return 0.0
        if not outcome.ok:
            logger.debug("Simulation failed for %s: %s", pattern.id, outcome.error)
            return 0.0
        return outcome.score

    def user_satisfaction(self, pattern: NeuralPattern, context: EvolutionContext) -> float:
        ratings = [f.rating for f in context.user_feedback if f.pattern_id == pattern.id]
        if not ratings:
            return 0.5
        return (sum(ratings) / len(ratings)) / 5.0
