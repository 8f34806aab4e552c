"""Emergent-behavior simulation.

Runs a pattern as the shared policy of a ring of agents and measures
whether collective structure appears: partial alignment that is
neither frozen consensus nor noise. The simulation is bounded (fixed
agent count, step budget scaled by context complexity), seeded from
the pattern and context, and touches no shared state.
"""

from __future__ import annotations

import hashlib
import math
import random
from typing import Callable

from pydantic import BaseModel

from neuroevo.exceptions import GenotypeConversionError, SimulationError
from neuroevo.evolution.genotype import extract_genotype
from neuroevo.types import EvolutionContext, NeuralPattern


def _sigmoid(x: float) -> float:
    if x < -60:
        return 0.0
    return 1.0 / (1.0 + math.exp(-x))


ACTIVATION_FUNCTIONS: dict[str, Callable[[float], float]] = {
    "relu": lambda x: max(0.0, x),
    "sigmoid": lambda x: 2.0 * _sigmoid(x) - 1.0,  # recentered to [-1, 1]
    "tanh": math.tanh,
    "gelu": lambda x: x * _sigmoid(1.702 * x),
    "swish": lambda x: x * _sigmoid(x),
    "elu": lambda x: x if x > 0 else math.exp(max(x, -60.0)) - 1.0,
    "leaky_relu": lambda x: x if x > 0 else 0.01 * x,
    "softplus": lambda x: math.log1p(math.exp(min(x, 60.0))),
}


class SimulationOutcome(BaseModel):
    """Result of one simulation. ``ok`` is False when the run failed."""

    ok: bool
    score: float = 0.0
    order: float = 0.0
    complexity: float = 0.0
    steps: int = 0
    error: str = ""


class PatternSimulator:
    """Bounded multi-agent simulation of a pattern under a context."""

    def __init__(self, agents: int = 16, max_steps: int = 64, bins: int = 8) -> None:
        self.agents = agents
        self.max_steps = max_steps
        self.bins = bins

    def run(self, pattern: NeuralPattern, context: EvolutionContext) -> SimulationOutcome:
        """Simulate and score. Failures come back as ``ok=False``, never raised."""
        try:
            return self.simulate(pattern, context)
        except SimulationError as e:
            return SimulationOutcome(ok=False, error=str(e))
        except Exception as e:
            return SimulationOutcome(ok=False, error=f"{type(e).__name__}: {e}")

    def simulate(self, pattern: NeuralPattern, context: EvolutionContext) -> SimulationOutcome:
        try:
            genotype = extract_genotype(pattern)
        except GenotypeConversionError as e:
            raise SimulationError(f"Cannot simulate pattern {pattern.id}: {e}") from e

        try:
            funcs = [ACTIVATION_FUNCTIONS[name] for name in genotype.activations]
        except KeyError as e:
            raise SimulationError(f"Unsupported activation {e}") from e

        env = context.environment
        weights = genotype.weights or [0.5, 0.5, 0.0]
        steps = max(8, int(self.max_steps * (0.5 + 0.5 * env.complexity)))
        noise = 0.05 + 0.25 * env.uncertainty
        shock_rate = 0.1 * env.dynamism

        seed = hashlib.sha256(
            f"{pattern.id}:{context.model_dump_json()}".encode()
        ).hexdigest()
        rng = random.Random(int(seed[:16], 16))

        n = self.agents
        states = [rng.uniform(-1.0, 1.0) for _ in range(n)]
        edges = [(c.source % n, c.target % n, c.weight) for c in genotype.connections]
        window: list[float] = []

        for t in range(steps):
            w_self = weights[t % len(weights)]
            w_nbr = weights[(t + 1) % len(weights)]
            bias = 0.1 * weights[(t + 2) % len(weights)]
            act = funcs[t % len(funcs)]
            nxt = []
            for i in range(n):
                drive = (
                    w_self * states[i]
                    + w_nbr * 0.5 * (states[i - 1] + states[(i + 1) % n])
                    + bias
                    + rng.gauss(0.0, noise)
                )
                nxt.append(act(drive))
            for source, target, weight in edges:
                nxt[target] += 0.1 * weight * states[source]
            if shock_rate and rng.random() < shock_rate:
                nxt[rng.randrange(n)] = rng.uniform(-1.0, 1.0)
            if any(not math.isfinite(x) for x in nxt):
                raise SimulationError(f"Simulation diverged at step {t}")
            states = [max(-1.0, min(1.0, x)) for x in nxt]
            if t >= steps - 8:
                window.extend(states)

        order = abs(sum(states) / n)
        complexity = self._entropy(window)
        balance = 4.0 * order * (1.0 - order)
        score = math.sqrt(max(0.0, balance) * complexity)
        return SimulationOutcome(
            ok=True,
            score=max(0.0, min(1.0, score)),
            order=order,
            complexity=complexity,
            steps=steps,
        )

    def _entropy(self, values: list[float]) -> float:
        """Shannon entropy of the state histogram, normalized to [0, 1]."""
        if not values:
            return 0.0
        counts = [0] * self.bins
        for v in values:
            idx = min(self.bins - 1, int((v + 1.0) / 2.0 * self.bins))
            counts[idx] += 1
        total = len(values)
        h = -sum((c / total) * math.log(c / total) for c in counts if c)
        return h / math.log(self.bins)
