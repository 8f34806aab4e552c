"""Neural Evolution Engine — drives one evolution run from seed to result.

Each call to ``evolve_pattern`` owns its own population, RNG, lineage
and state machine. The only things shared between concurrent runs are
the injected fitness cache and pattern store. Nothing is written to the
store until a run has terminated successfully.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Mapping

import structlog
from pydantic import BaseModel, Field

from neuroevo.config import NeuroevoSettings, settings as default_settings
from neuroevo.events.bus import EventBus
from neuroevo.exceptions import (
    EvolutionCancelled,
    EvolutionFailed,
    PatternNotFoundError,
)
from neuroevo.memory.base import PatternMemoryManager
from neuroevo.evolution.adaptation import ParameterAdapter
from neuroevo.evolution.archive import ArchiveEntry, EvolutionArchive
from neuroevo.evolution.config import EvolutionConfig
from neuroevo.evolution.fitness import FitnessCache, FitnessEvaluator, FitnessMetrics
from neuroevo.evolution.lineage import EvolutionStep, Lineage, summarize_improvements
from neuroevo.evolution.population import Individual, Population, PopulationManager
from neuroevo.evolution.state_machine import RunState, RunStateMachine
from neuroevo.types import (
    EvolutionContext,
    NeuralPattern,
    PatternId,
    RunId,
    new_id,
    utcnow,
)

logger = structlog.get_logger()


class RunMetadata(BaseModel):
    run_id: RunId
    base_pattern_id: PatternId
    population_size: int
    total_generations: int
    final_diversity: float = 0.0
    convergence_rate: float = 0.0
    mutation_rate: float = 0.0
    elitism_rate: float = 0.0
    diversity_weight: float = 0.0
    novelty_weight: float = 0.0
    stability_weight: float = 0.0
    discarded_individuals: int = 0
    duration_ms: float = 0.0


class EvolutionResult(BaseModel):
    success: bool = True
    pattern: NeuralPattern
    generation: int
    fitness_score: float
    fitness: FitnessMetrics
    improvements: list[str] = Field(default_factory=list)
    evolution_path: list[EvolutionStep] = Field(default_factory=list)
    metadata: RunMetadata


class _Run:
    """Mutable state owned by exactly one evolution run."""

    def __init__(
        self,
        run_id: RunId,
        base_pattern_id: PatternId,
        config: EvolutionConfig,
        cancel_event: asyncio.Event,
    ) -> None:
        self.run_id = run_id
        self.base_pattern_id = base_pattern_id
        self.defaults = config
        self.config = config
        self.rng = random.Random(config.seed)
        self.lineage = Lineage()
        self.machine = RunStateMachine(run_id)
        self.cancel_event = cancel_event
        self.started = time.monotonic()
        self.deadline = (
            self.started + config.timeout_seconds
            if config.timeout_seconds is not None
            else None
        )
        self.existing_ids: set[PatternId] = set()
        self.discarded = 0

    def check_interrupted(self) -> None:
        if self.cancel_event.is_set():
            raise EvolutionCancelled("cancelled", self.lineage.steps, self.base_pattern_id)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise EvolutionCancelled("timeout", self.lineage.steps, self.base_pattern_id)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000.0


class EvolutionRun:
    """Handle to a run started in the background with ``engine.start``."""

    def __init__(
        self,
        run_id: RunId,
        base_pattern_id: PatternId,
        task: asyncio.Task,
        cancel_event: asyncio.Event,
    ) -> None:
        self.run_id = run_id
        self.base_pattern_id = base_pattern_id
        self._task = task
        self._cancel_event = cancel_event

    def cancel(self) -> None:
        """Ask the run to stop at its next generation boundary."""
        self._cancel_event.set()

    @property
    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> EvolutionResult:
        return await self._task


class NeuralEvolutionEngine:
    """Evolves a stored pattern into a fitter one.

    Usage:
        engine = NeuralEvolutionEngine(store, event_bus=bus)
        result = await engine.evolve_pattern("abc123", context, {"maxGenerations": 20})
    """

    def __init__(
        self,
        memory: PatternMemoryManager,
        event_bus: EventBus | None = None,
        evaluator: FitnessEvaluator | None = None,
        population_manager: PopulationManager | None = None,
        adapter: ParameterAdapter | None = None,
        archive: EvolutionArchive | None = None,
        defaults: EvolutionConfig | None = None,
        settings: NeuroevoSettings | None = None,
    ) -> None:
        s = settings or default_settings
        self._memory = memory
        self._event_bus = event_bus
        self.evaluator = evaluator or FitnessEvaluator(
            memory,
            cache=FitnessCache(s.fitness_cache_size),
            novelty_neighbors=s.novelty_neighbors,
            max_concurrency=s.max_concurrent_evaluations,
        )
        self.population_manager = population_manager or PopulationManager(
            memory, self.evaluator, convergence_window=s.convergence_window
        )
        self.adapter = adapter or ParameterAdapter()
        self.archive = archive or EvolutionArchive()
        self.defaults = defaults or EvolutionConfig.from_settings(s)

    def start(
        self,
        base_pattern_id: PatternId,
        context: EvolutionContext | None = None,
        config: Mapping[str, Any] | EvolutionConfig | None = None,
    ) -> EvolutionRun:
        """Launch ``evolve_pattern`` as a task and return a cancellable handle."""
        run_id = new_id()
        cancel_event = asyncio.Event()
        task = asyncio.create_task(
            self.evolve_pattern(
                base_pattern_id, context, config, cancel_event=cancel_event, run_id=run_id
            )
        )
        return EvolutionRun(run_id, base_pattern_id, task, cancel_event)

    async def evolve_pattern(
        self,
        base_pattern_id: PatternId,
        context: EvolutionContext | None = None,
        config: Mapping[str, Any] | EvolutionConfig | None = None,
        cancel_event: asyncio.Event | None = None,
        run_id: RunId | None = None,
    ) -> EvolutionResult:
        """Evolve the stored pattern ``base_pattern_id`` under ``context``.

        ``config`` overrides the engine defaults; camelCase keys are
        accepted. Raises PatternNotFoundError if the base pattern is
        missing, EvolutionCancelled on cancellation or timeout, and
        EvolutionFailed for anything else that aborts the run.
        """
        context = context or EvolutionContext()
        run_id = run_id or new_id()
        machine = RunStateMachine(run_id)
        run: _Run | None = None

        try:
            run_config = self.defaults.merged(config)
            run = _Run(run_id, base_pattern_id, run_config, cancel_event or asyncio.Event())
            machine = run.machine

            base = await self._memory.get_pattern(base_pattern_id)
            if base is None:
                raise PatternNotFoundError(base_pattern_id)

            return await self._run(run, base, context)

        except PatternNotFoundError as e:
            await self._fail(machine)
            logger.warning("evolution_base_pattern_missing", run_id=run_id, base_pattern_id=base_pattern_id)
            await self._emit_failed(base_pattern_id, e, context)
            raise

        except EvolutionCancelled as e:
            if not machine.finished:
                await machine.transition(RunState.CANCELLED)
            logger.warning(
                "evolution_run_cancelled", run_id=run_id, reason=e.reason,
                steps=len(e.partial_lineage),
            )
            await self._emit("evolution.cancelled", {
                "run_id": run_id,
                "base_pattern_id": base_pattern_id,
                "reason": e.reason,
                "lineage": [s.model_dump(mode="json") for s in e.partial_lineage],
            })
            raise

        except EvolutionFailed as e:
            if run is not None:
                e.partial_lineage = run.lineage.steps
            e.base_pattern_id = base_pattern_id
            await self._fail(machine)
            logger.error("evolution_run_failed", run_id=run_id, error=e.reason)
            await self._emit_failed(base_pattern_id, e, context)
            raise

        except Exception as e:
            partial = run.lineage.steps if run is not None else []
            failure = EvolutionFailed(str(e) or type(e).__name__, partial, base_pattern_id)
            await self._fail(machine)
            logger.error("evolution_run_failed", run_id=run_id, error=failure.reason)
            await self._emit_failed(base_pattern_id, failure, context)
            raise failure from e

    # ── The generational loop ────────────────────────────────────

    async def _run(
        self, run: _Run, base: NeuralPattern, context: EvolutionContext
    ) -> EvolutionResult:
        pm = self.population_manager
        config = run.config

        logger.info(
            "evolution_run_started", run_id=run.run_id, base_pattern_id=base.id,
            population_size=config.population_size, max_generations=config.max_generations,
        )
        await self._emit("evolution.started", {
            "run_id": run.run_id,
            "base_pattern_id": base.id,
            "config": config.model_dump(mode="json"),
        })

        population = await pm.seed(base, context, config, run.rng)
        run.existing_ids = {
            i.phenotype.id for i in population.individuals if not i.parent_ids
        }
        run.lineage.append(EvolutionStep(
            generation=0,
            operation="seed",
            parent_ids=[base.id],
            mutations=[t for i in population.individuals for t in i.mutations],
        ))

        await run.machine.transition(RunState.EVALUATING)
        population = await self._evaluate(population, context)
        seed_individual = population.individuals[0]
        await self._progress(run, population)

        while True:
            config = run.config
            if (
                population.best_fitness >= config.fitness_threshold
                or population.generation >= config.max_generations
            ):
                await run.machine.transition(RunState.TERMINATED)
                break
            run.check_interrupted()

            await run.machine.transition(RunState.REPRODUCING)
            parents = pm.select_parents(population, config, run.rng)
            offspring, discarded = pm.reproduce(parents, config, run.rng)
            run.discarded += discarded
            offspring = await pm.evaluate(offspring, context)

            await run.machine.transition(RunState.SURVIVOR_SELECTION)
            previous_best = population.best_fitness
            advanced = pm.select_survivors(population, offspring, config)

            await run.machine.transition(RunState.EVALUATING)
            advanced = await self._evaluate(advanced, context)
            run.lineage.append(EvolutionStep(
                generation=advanced.generation,
                operation="generation_advance",
                parent_ids=list(dict.fromkeys(p.id for p in parents)),
                fitness_improvement=advanced.best_fitness - previous_best,
                mutations=[t for o in offspring for t in o.mutations],
            ))
            population = advanced
            await self._progress(run, population)

            if population.generation % config.adaptation_interval == 0:
                await self._adapt(run, population)

        return await self._finish(run, base, seed_individual, population, context)

    async def _evaluate(self, population: Population, context: EvolutionContext) -> Population:
        pm = self.population_manager
        individuals = await pm.evaluate(population.individuals, context)
        return pm.refresh_stats(population.model_copy(update={"individuals": individuals}))

    async def _progress(self, run: _Run, population: Population) -> None:
        logger.debug(
            "evolution_generation_completed", run_id=run.run_id,
            generation=population.generation, best_fitness=round(population.best_fitness, 4),
            diversity=round(population.diversity, 4),
        )
        await self._emit("evolution.progress", {
            "run_id": run.run_id,
            "base_pattern_id": run.base_pattern_id,
            "generation": population.generation,
            "best_fitness": population.best_fitness,
            "average_fitness": population.average_fitness,
            "diversity": population.diversity,
            "convergence_rate": population.convergence_rate,
        })

    async def _adapt(self, run: _Run, population: Population) -> None:
        decision = self.adapter.adapt(
            run.config, population.convergence_rate, population.diversity, run.defaults
        )
        if not decision.changed:
            return
        run.config = decision.config
        (m_before, m_after), (e_before, e_after) = decision.mutation_rate, decision.elitism_rate
        run.lineage.append(EvolutionStep(
            generation=population.generation,
            operation="parameter_adaptation",
            mutations=[
                f"mutation_rate:{m_before:.4f}->{m_after:.4f}",
                f"elitism_rate:{e_before:.4f}->{e_after:.4f}",
            ],
        ))
        logger.info(
            "evolution_parameters_adapted", run_id=run.run_id, reason=decision.reason,
            mutation_rate=m_after, elitism_rate=e_after,
        )
        await self._emit("evolution.parameters_adapted", {
            "run_id": run.run_id,
            "generation": population.generation,
            "reason": decision.reason,
            "mutation_rate": m_after,
            "elitism_rate": e_after,
        })

    async def _finish(
        self,
        run: _Run,
        base: NeuralPattern,
        seed_individual: Individual,
        population: Population,
        context: EvolutionContext,
    ) -> EvolutionResult:
        winner = population.best()
        fitness_score = winner.overall_fitness

        if winner.phenotype.id in run.existing_ids:
            pattern = winner.phenotype
        else:
            pattern = winner.phenotype.model_copy(update={
                "evolution": winner.phenotype.evolution.model_copy(update={
                    "mutations": list(winner.mutations),
                    "fitness_score": fitness_score,
                    "survival_rate": winner.age / max(1, population.generation),
                }),
                "updated_at": utcnow(),
            })
            await self._memory.store_pattern(pattern)

        result = EvolutionResult(
            pattern=pattern,
            generation=population.generation,
            fitness_score=fitness_score,
            fitness=winner.fitness or FitnessMetrics(),
            improvements=summarize_improvements(seed_individual, winner),
            evolution_path=run.lineage.steps,
            metadata=RunMetadata(
                run_id=run.run_id,
                base_pattern_id=base.id,
                population_size=run.config.population_size,
                total_generations=population.generation,
                final_diversity=population.diversity,
                convergence_rate=population.convergence_rate,
                mutation_rate=run.config.mutation_rate,
                elitism_rate=run.config.elitism_rate,
                diversity_weight=run.config.diversity_weight,
                novelty_weight=run.config.novelty_weight,
                stability_weight=run.config.stability_weight,
                discarded_individuals=run.discarded,
                duration_ms=run.elapsed_ms,
            ),
        )
        self.archive.record(ArchiveEntry(
            run_id=run.run_id,
            base_pattern_id=base.id,
            pattern_id=pattern.id,
            generation=result.generation,
            fitness_score=fitness_score,
            improved=pattern.id != base.id,
            mutations=list(winner.mutations),
        ))
        logger.info(
            "evolution_run_completed", run_id=run.run_id, pattern_id=pattern.id,
            generation=result.generation, fitness=round(fitness_score, 4),
        )
        await self._emit("evolution.pattern_evolved", {
            "base_pattern_id": base.id,
            "result": result.model_dump(mode="json"),
            "context": context.model_dump(mode="json"),
        })
        return result

    # ── Helpers ──────────────────────────────────────────────────

    async def _fail(self, machine: RunStateMachine) -> None:
        if not machine.finished:
            await machine.transition(RunState.FAILED)

    async def _emit_failed(
        self, base_pattern_id: PatternId, error: Exception, context: EvolutionContext
    ) -> None:
        await self._emit("evolution.failed", {
            "base_pattern_id": base_pattern_id,
            "error": str(error),
            "error_type": type(error).__name__,
            "context": context.model_dump(mode="json"),
        })

    async def _emit(self, topic: str, data: dict[str, Any]) -> None:
        if self._event_bus:
            await self._event_bus.emit(topic, data, source="evolution_engine")
