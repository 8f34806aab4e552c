"""Genetic operators — crossover and mutation over genotypes.

Operators are pure with respect to their inputs: parents are never
modified, randomness comes only from the ``random.Random`` handed in,
and every mutation reports tags naming the fields it touched so the
lineage stays auditable.
"""

from __future__ import annotations

import math
import random

from pydantic import BaseModel, Field

from neuroevo.evolution.genotype import (
    ARCHITECTURE_FAMILIES,
    DEFAULT_HYPERPARAMETERS,
    HYPERPARAMETER_BOUNDS,
    KNOWN_ACTIVATIONS,
    AttentionArchitecture,
    FeedforwardArchitecture,
    Genotype,
    GraphArchitecture,
    RecurrentArchitecture,
    default_architecture,
)
from neuroevo.types import Connection

GENOTYPE_FIELDS = ("architecture", "hyperparameters", "weights", "activations", "connections")


class MutationOutcome(BaseModel):
    genotype: Genotype
    tags: list[str] = Field(default_factory=list)


class CrossoverOutcome(BaseModel):
    first: Genotype
    second: Genotype
    tags: list[str] = Field(default_factory=list)


class GeneticOperators:
    """Crossover and mutation with bounded, structure-aware perturbations.

    Both children of a crossover and every mutant are structurally
    valid whenever their inputs are: connections that fall outside a
    new architecture are dropped.
    """

    def __init__(
        self,
        family_switch_rate: float = 0.1,
        weight_sigma: float = 0.1,
        max_activations: int = 4,
        max_connections: int = 64,
    ) -> None:
        self.family_switch_rate = family_switch_rate
        self.weight_sigma = weight_sigma
        self.max_activations = max_activations
        self.max_connections = max_connections

    # ── Crossover ────────────────────────────────────────────────

    def crossover(
        self, a: Genotype, b: Genotype, rng: random.Random
    ) -> CrossoverOutcome:
        """Uniform crossover per field; weights use a single cut point."""
        first = a.model_copy(deep=True)
        second = b.model_copy(deep=True)
        swapped: list[str] = []

        for name in ("architecture", "activations", "connections"):
            if rng.random() < 0.5:
                va, vb = getattr(first, name), getattr(second, name)
                first = first.model_copy(update={name: vb})
                second = second.model_copy(update={name: va})
                swapped.append(name)

        hp_a, hp_b = {}, {}
        for key in sorted(set(a.hyperparameters) | set(b.hyperparameters)):
            take_a = rng.random() < 0.5
            src_a, src_b = (a, b) if take_a else (b, a)
            if key in src_a.hyperparameters:
                hp_a[key] = src_a.hyperparameters[key]
            if key in src_b.hyperparameters:
                hp_b[key] = src_b.hyperparameters[key]
            if not take_a:
                swapped.append(f"hyperparameters.{key}")
        first = first.model_copy(update={"hyperparameters": hp_a})
        second = second.model_copy(update={"hyperparameters": hp_b})

        if a.weights and b.weights:
            cut = rng.randrange(0, min(len(a.weights), len(b.weights)) + 1)
            first = first.model_copy(update={"weights": a.weights[:cut] + b.weights[cut:]})
            second = second.model_copy(update={"weights": b.weights[:cut] + a.weights[cut:]})
            swapped.append(f"weights@{cut}")

        first = self._repair(first)
        second = self._repair(second)
        return CrossoverOutcome(first=first, second=second, tags=[f"crossover:{t}" for t in swapped])

    # ── Mutation ─────────────────────────────────────────────────

    def mutate(
        self,
        genotype: Genotype,
        rate: float,
        rng: random.Random,
        force: bool = False,
    ) -> MutationOutcome:
        """Perturb each field independently with probability ``rate``.

        With ``force`` at least one field is always touched.
        """
        current = genotype.model_copy(deep=True)
        tags: list[str] = []
        for name in GENOTYPE_FIELDS:
            if rng.random() < rate:
                current, tag = self._mutate_field(current, name, rng)
                tags.append(tag)
        if force and not tags:
            name = rng.choice(GENOTYPE_FIELDS)
            current, tag = self._mutate_field(current, name, rng)
            tags.append(tag)
        return MutationOutcome(genotype=self._repair(current), tags=tags)

    def _mutate_field(
        self, g: Genotype, name: str, rng: random.Random
    ) -> tuple[Genotype, str]:
        if name == "architecture":
            return self._mutate_architecture(g, rng)
        if name == "hyperparameters":
            return self._mutate_hyperparameters(g, rng)
        if name == "weights":
            return self._mutate_weights(g, rng)
        if name == "activations":
            return self._mutate_activations(g, rng)
        return self._mutate_connections(g, rng)

    def _mutate_architecture(self, g: Genotype, rng: random.Random) -> tuple[Genotype, str]:
        arch = g.architecture
        if rng.random() < self.family_switch_rate:
            family = rng.choice([f for f in ARCHITECTURE_FAMILIES if f != arch.family])
            return (
                g.model_copy(update={"architecture": default_architecture(family)}),
                f"architecture:{arch.family}->{family}",
            )

        if isinstance(arch, FeedforwardArchitecture):
            layers = list(arch.layers)
            roll = rng.random()
            if not layers or (roll < 0.2 and len(layers) < 32):
                layers.insert(rng.randrange(len(layers) + 1), rng.choice([4, 8, 16, 32]))
                detail = f"feedforward:+layer({len(layers)})"
            elif roll < 0.4 and len(layers) > 1:
                layers.pop(rng.randrange(len(layers)))
                detail = f"feedforward:-layer({len(layers)})"
            else:
                i = rng.randrange(len(layers))
                layers[i] = _bounded_int(layers[i] * rng.uniform(0.5, 1.5), 1, 4096)
                detail = f"feedforward:layer[{i}]={layers[i]}"
            new_arch = arch.model_copy(update={"layers": layers})
        elif isinstance(arch, RecurrentArchitecture):
            if rng.random() < 0.3:
                cell = rng.choice([c for c in ("rnn", "gru", "lstm") if c != arch.cell])
                new_arch = arch.model_copy(update={"cell": cell})
                detail = f"recurrent:cell={cell}"
            elif rng.random() < 0.5:
                size = _bounded_int(arch.hidden_size * rng.uniform(0.5, 1.5), 1, 4096)
                new_arch = arch.model_copy(update={"hidden_size": size})
                detail = f"recurrent:hidden={size}"
            else:
                layers = _bounded_int(arch.num_layers + rng.choice([-1, 1]), 1, 16)
                new_arch = arch.model_copy(update={"num_layers": layers})
                detail = f"recurrent:layers={layers}"
        elif isinstance(arch, AttentionArchitecture):
            if rng.random() < 0.5:
                heads = rng.choice([h for h in (1, 2, 4, 8, 16) if arch.model_dim % h == 0])
                new_arch = arch.model_copy(update={"num_heads": heads})
                detail = f"attention:heads={heads}"
            else:
                layers = _bounded_int(arch.num_layers + rng.choice([-1, 1]), 1, 48)
                new_arch = arch.model_copy(update={"num_layers": layers})
                detail = f"attention:layers={layers}"
        elif isinstance(arch, GraphArchitecture):
            if rng.random() < 0.5:
                nodes = _bounded_int(arch.num_nodes + rng.randint(-2, 2), 2, 1024)
                new_arch = arch.model_copy(update={"num_nodes": nodes})
                detail = f"graph:nodes={nodes}"
            else:
                passes = _bounded_int(arch.message_passes + rng.choice([-1, 1]), 1, 16)
                new_arch = arch.model_copy(update={"message_passes": passes})
                detail = f"graph:passes={passes}"
        else:
            new_arch, detail = arch, "unchanged"
        return g.model_copy(update={"architecture": new_arch}), f"architecture:{detail}"

    def _mutate_hyperparameters(self, g: Genotype, rng: random.Random) -> tuple[Genotype, str]:
        hp = dict(g.hyperparameters)
        if not hp:
            key = rng.choice(sorted(DEFAULT_HYPERPARAMETERS))
            hp[key] = DEFAULT_HYPERPARAMETERS[key]
        key = rng.choice(sorted(hp))
        low, high, log_scale = HYPERPARAMETER_BOUNDS.get(
            key, (0.0, max(1.0, 2.0 * abs(hp[key])), False)
        )
        value = hp[key]
        if log_scale:
            value = value * 10 ** rng.uniform(-0.5, 0.5)
        else:
            value = value + rng.gauss(0.0, 0.2 * (high - low))
        hp[key] = max(low, min(high, value))
        return g.model_copy(update={"hyperparameters": hp}), f"hyperparameters.{key}"

    def _mutate_weights(self, g: Genotype, rng: random.Random) -> tuple[Genotype, str]:
        if not g.weights:
            weights = [rng.gauss(0.0, 0.5) for _ in range(8)]
            return g.model_copy(update={"weights": weights}), "weights:initialized(8)"
        weights = [w + rng.gauss(0.0, self.weight_sigma) for w in g.weights]
        return g.model_copy(update={"weights": weights}), f"weights:perturbed({len(weights)})"

    def _mutate_activations(self, g: Genotype, rng: random.Random) -> tuple[Genotype, str]:
        acts = list(g.activations)
        unused = [a for a in KNOWN_ACTIVATIONS if a not in acts]
        roll = rng.random()
        if roll < 0.3 and len(acts) < self.max_activations and unused:
            added = rng.choice(unused)
            acts.append(added)
            tag = f"activations:+{added}"
        elif roll < 0.6 and len(acts) > 1:
            removed = acts.pop(rng.randrange(len(acts)))
            tag = f"activations:-{removed}"
        elif unused:
            i = rng.randrange(len(acts))
            replacement = rng.choice(unused)
            tag = f"activations:{acts[i]}->{replacement}"
            acts[i] = replacement
        else:
            rng.shuffle(acts)
            tag = "activations:reordered"
        return g.model_copy(update={"activations": acts}), tag

    def _mutate_connections(self, g: Genotype, rng: random.Random) -> tuple[Genotype, str]:
        conns = [c.model_copy() for c in g.connections]
        units = g.architecture.unit_count()
        roll = rng.random()
        if (roll < 0.5 or not conns) and len(conns) < self.max_connections and units > 1:
            source, target = rng.sample(range(units), 2)
            conns.append(Connection(source=source, target=target, weight=rng.uniform(-1.0, 1.0)))
            tag = f"connections:+{source}->{target}"
        elif roll < 0.75 and conns:
            removed = conns.pop(rng.randrange(len(conns)))
            tag = f"connections:-{removed.source}->{removed.target}"
        elif conns:
            i = rng.randrange(len(conns))
            conns[i] = conns[i].model_copy(
                update={"weight": conns[i].weight + rng.gauss(0.0, self.weight_sigma)}
            )
            tag = f"connections:reweighted({conns[i].source}->{conns[i].target})"
        else:
            tag = "connections:unchanged"
        return g.model_copy(update={"connections": conns}), tag

    # ── Repair ───────────────────────────────────────────────────

    def _repair(self, g: Genotype) -> Genotype:
        """Drop connections that no longer fit the architecture."""
        if g.architecture.problems():
            return g
        units = g.architecture.unit_count()
        kept = [
            c for c in g.connections
            if 0 <= c.source < units and 0 <= c.target < units
        ]
        if len(kept) == len(g.connections):
            return g
        return g.model_copy(update={"connections": kept})


def _bounded_int(value: float, low: int, high: int) -> int:
    if not math.isfinite(value):
        return low
    return max(low, min(high, int(round(value))))
