"""Population management — seeding, selection, reproduction, survival.

A run's population is owned by that run alone. Every random decision
draws from the ``random.Random`` the caller passes in, so a seeded run
replays exactly.
"""

from __future__ import annotations

import logging
import math
import random

from pydantic import BaseModel, Field

from neuroevo.exceptions import EvolutionFailed, GenotypeConversionError
from neuroevo.memory.base import PatternMemoryManager
from neuroevo.memory.vectors import mean_pairwise_distance
from neuroevo.evolution.config import EvolutionConfig
from neuroevo.evolution.fitness import FitnessEvaluator, FitnessMetrics
from neuroevo.evolution.genotype import Genotype, extract_genotype, genotype_to_pattern
from neuroevo.evolution.operators import GeneticOperators
from neuroevo.types import EvolutionContext, IndividualId, NeuralPattern, new_id

logger = logging.getLogger(__name__)


class Individual(BaseModel):
    """One candidate: a genotype and the pattern derived from it."""

    id: IndividualId = Field(default_factory=new_id)
    genotype: Genotype
    phenotype: NeuralPattern
    fitness: FitnessMetrics | None = None
    age: int = 0
    parent_ids: list[IndividualId] = Field(default_factory=list)
    mutations: list[str] = Field(default_factory=list)

    @property
    def overall_fitness(self) -> float:
        return self.fitness.overall() if self.fitness else 0.0

    def is_coherent(self) -> bool:
        """True when the phenotype still encodes exactly this genotype."""
        try:
            return extract_genotype(self.phenotype) == self.genotype
        except GenotypeConversionError:
            return False


class Population(BaseModel):
    individuals: list[Individual] = Field(default_factory=list)
    generation: int = 0
    average_fitness: float = 0.0
    best_fitness: float = 0.0
    diversity: float = 0.0
    convergence_rate: float = 0.0
    best_history: list[float] = Field(default_factory=list)

    def best(self) -> Individual:
        return max(self.individuals, key=lambda i: i.overall_fitness)

    def __len__(self) -> int:
        return len(self.individuals)


def rank_key(individual: Individual) -> tuple[float, int]:
    """Sort key: higher fitness first, then younger."""
    return (-individual.overall_fitness, individual.age)


class PopulationManager:
    """Builds and advances a fixed-size population of Individuals."""

    def __init__(
        self,
        memory: PatternMemoryManager,
        evaluator: FitnessEvaluator,
        operators: GeneticOperators | None = None,
        convergence_window: int = 5,
    ) -> None:
        self._memory = memory
        self._evaluator = evaluator
        self.operators = operators or GeneticOperators()
        self.convergence_window = max(2, convergence_window)

    # ── Seeding ──────────────────────────────────────────────────

    async def seed(
        self,
        base_pattern: NeuralPattern,
        context: EvolutionContext,
        config: EvolutionConfig,
        rng: random.Random,
    ) -> Population:
        """Base pattern first, then nearest neighbors, then mutants of both.

        Raises GenotypeConversionError if the base pattern itself has no
        usable genotype.
        """
        size = config.population_size
        base_genotype = extract_genotype(base_pattern)
        problems = base_genotype.problems()
        if problems:
            raise GenotypeConversionError(
                f"Base pattern {base_pattern.id} has an unusable genotype: {'; '.join(problems)}"
            )
        individuals = [Individual(genotype=base_genotype, phenotype=base_pattern)]

        neighbor_slots = size // 2
        neighbor_count = 0
        if neighbor_slots:
            neighbors = await self._memory.find_similar_patterns(
                base_pattern.embedding, neighbor_slots + 1
            )
            seen = {base_pattern.id}
            for pattern in neighbors:
                if len(individuals) > neighbor_slots or len(individuals) >= size:
                    break
                if pattern.id in seen:
                    continue
                seen.add(pattern.id)
                try:
                    genotype = extract_genotype(pattern)
                except GenotypeConversionError as e:
                    logger.debug("Skipping neighbor %s: %s", pattern.id, e)
                    continue
                if genotype.problems():
                    logger.debug("Skipping neighbor %s: invalid genotype", pattern.id)
                    continue
                individuals.append(Individual(genotype=genotype, phenotype=pattern))
                neighbor_count += 1

        attempts = 0
        max_attempts = size * 10
        while len(individuals) < size:
            if attempts >= max_attempts:
                raise EvolutionFailed(
                    f"Could not seed {size} individuals after {attempts} attempts",
                    base_pattern_id=base_pattern.id,
                )
            attempts += 1
            parent = individuals[rng.randrange(len(individuals))]
            outcome = self.operators.mutate(parent.genotype, config.mutation_rate, rng, force=True)
            try:
                phenotype = genotype_to_pattern(outcome.genotype, parent.phenotype)
            except GenotypeConversionError as e:
                logger.debug("Discarding seed mutant of %s: %s", parent.id, e)
                continue
            individuals.append(Individual(
                genotype=outcome.genotype,
                phenotype=phenotype,
                parent_ids=[parent.id],
                mutations=outcome.tags,
            ))

        logger.info(
            "Seeded population of %d for %s (%d neighbors)",
            len(individuals), base_pattern.id, neighbor_count,
        )
        return Population(individuals=individuals, generation=0)

    # ── Evaluation & stats ───────────────────────────────────────

    async def evaluate(
        self, individuals: list[Individual], context: EvolutionContext
    ) -> list[Individual]:
        metrics = await self._evaluator.evaluate_many(
            [i.phenotype for i in individuals], context
        )
        return [i.model_copy(update={"fitness": m}) for i, m in zip(individuals, metrics)]

    def refresh_stats(self, population: Population) -> Population:
        """Recompute average/best/diversity/convergence from the individuals."""
        scores = [i.overall_fitness for i in population.individuals]
        best = max(scores) if scores else 0.0
        history = population.best_history + [best]
        return population.model_copy(update={
            "average_fitness": sum(scores) / len(scores) if scores else 0.0,
            "best_fitness": best,
            "diversity": mean_pairwise_distance(
                [i.phenotype.embedding for i in population.individuals]
            ),
            "best_history": history,
            "convergence_rate": self.convergence_rate(history),
        })

    def convergence_rate(self, history: list[float]) -> float:
        """Average per-generation change in best fitness over the window."""
        window = history[-self.convergence_window:]
        if len(window) < 2:
            return 0.0
        return (window[-1] - window[0]) / (len(window) - 1)

    # ── Selection & reproduction ─────────────────────────────────

    def parent_count(self, config: EvolutionConfig) -> int:
        return max(2, math.floor(config.population_size * config.elitism_rate * 2))

    def select_parents(
        self, population: Population, config: EvolutionConfig, rng: random.Random
    ) -> list[Individual]:
        """Tournament selection; the first-drawn contestant wins ties."""
        pool = population.individuals
        parents = []
        for _ in range(self.parent_count(config)):
            contestants = [pool[rng.randrange(len(pool))] for _ in range(config.tournament_size)]
            parents.append(max(contestants, key=lambda i: i.overall_fitness))
        return parents

    def reproduce(
        self, parents: list[Individual], config: EvolutionConfig, rng: random.Random
    ) -> tuple[list[Individual], int]:
        """Pair parents in order and breed. Returns (offspring, discarded).

        A leftover unpaired parent is cloned. Clones keep their parent's
        pattern unless mutation touches them.
        """
        offspring: list[Individual] = []
        discarded = 0

        for i in range(0, len(parents), 2):
            pair = parents[i:i + 2]
            if len(pair) == 2 and rng.random() < config.crossover_rate:
                a, b = pair
                outcome = self.operators.crossover(a.genotype, b.genotype, rng)
                drafts = [
                    (outcome.first, a, [a.id, b.id], list(outcome.tags), True),
                    (outcome.second, b, [b.id, a.id], list(outcome.tags), True),
                ]
            else:
                drafts = [(p.genotype, p, [p.id], [], False) for p in pair]

            for genotype, primary, parent_ids, tags, changed in drafts:
                if rng.random() < config.mutation_rate:
                    mutated = self.operators.mutate(genotype, config.mutation_rate, rng, force=True)
                    genotype = mutated.genotype
                    tags = tags + mutated.tags
                    changed = True
                if changed:
                    try:
                        phenotype = genotype_to_pattern(genotype, primary.phenotype)
                    except GenotypeConversionError as e:
                        logger.debug("Discarding offspring of %s: %s", primary.id, e)
                        discarded += 1
                        continue
                else:
                    genotype, phenotype = primary.genotype, primary.phenotype
                offspring.append(Individual(
                    genotype=genotype,
                    phenotype=phenotype,
                    parent_ids=parent_ids,
                    mutations=tags,
                ))

        return offspring, discarded

    def select_survivors(
        self,
        current: Population,
        offspring: list[Individual],
        config: EvolutionConfig,
    ) -> Population:
        """Elites from ``current``, then ranked offspring, then the rest of ``current``.

        Always returns ``population_size`` individuals when
        ``current`` already had that many.
        """
        size = config.population_size
        elite_count = min(size, max(1, math.floor(size * config.elitism_rate)))
        ranked_current = sorted(current.individuals, key=rank_key)

        chosen = ranked_current[:elite_count]
        chosen += sorted(offspring, key=rank_key)[: size - len(chosen)]
        chosen += ranked_current[elite_count: elite_count + size - len(chosen)]

        current_ids = {i.id for i in current.individuals}
        survivors = [
            i.model_copy(update={"age": i.age + 1}) if i.id in current_ids else i
            for i in chosen
        ]
        return current.model_copy(update={
            "individuals": survivors,
            "generation": current.generation + 1,
        })
