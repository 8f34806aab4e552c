"""Adaptive retuning of operator rates.

Every few generations the engine checks whether the search has
stalled. Stagnation raises the mutation rate and lowers elitism to
reintroduce variety; once diversity recovers, both drift back toward
the run's starting values. All moves are bounded and monotone in the
signal that triggered them.
"""

from __future__ import annotations

from pydantic import BaseModel

from neuroevo.evolution.config import EvolutionConfig


class AdaptationDecision(BaseModel):
    config: EvolutionConfig
    changed: bool = False
    reason: str = ""
    mutation_rate: tuple[float, float] = (0.0, 0.0)  # (before, after)
    elitism_rate: tuple[float, float] = (0.0, 0.0)


class ParameterAdapter:
    def __init__(
        self,
        stagnation_threshold: float = 1e-3,
        recovery_diversity: float = 0.25,
        mutation_boost: float = 1.5,
        elitism_decay: float = 0.8,
        max_mutation_rate: float = 0.5,
        min_elitism_rate: float = 0.05,
        recovery_step: float = 0.5,
    ) -> None:
        self.stagnation_threshold = stagnation_threshold
        self.recovery_diversity = recovery_diversity
        self.mutation_boost = mutation_boost
        self.elitism_decay = elitism_decay
        self.max_mutation_rate = max_mutation_rate
        self.min_elitism_rate = min_elitism_rate
        self.recovery_step = recovery_step

    def adapt(
        self,
        config: EvolutionConfig,
        convergence_rate: float,
        diversity: float,
        defaults: EvolutionConfig,
    ) -> AdaptationDecision:
        mutation, elitism = config.mutation_rate, config.elitism_rate

        if abs(convergence_rate) < self.stagnation_threshold:
            # Never lowers mutation or raises elitism, even outside the caps.
            boosted = mutation * self.mutation_boost if mutation > 0 else 0.05
            new_mutation = max(mutation, min(self.max_mutation_rate, boosted))
            new_elitism = min(elitism, max(self.min_elitism_rate, elitism * self.elitism_decay))
            reason = "stagnation"
        elif diversity >= self.recovery_diversity:
            new_mutation = mutation + (defaults.mutation_rate - mutation) * self.recovery_step
            new_elitism = elitism + (defaults.elitism_rate - elitism) * self.recovery_step
            reason = "diversity_recovered"
        else:
            return AdaptationDecision(
                config=config,
                mutation_rate=(mutation, mutation),
                elitism_rate=(elitism, elitism),
            )

        new_mutation = max(0.0, min(1.0, new_mutation))
        new_elitism = max(0.0, min(1.0, new_elitism))
        changed = abs(new_mutation - mutation) > 1e-12 or abs(new_elitism - elitism) > 1e-12
        return AdaptationDecision(
            config=config.model_copy(update={
                "mutation_rate": new_mutation,
                "elitism_rate": new_elitism,
            }),
            changed=changed,
            reason=reason if changed else "",
            mutation_rate=(mutation, new_mutation),
            elitism_rate=(elitism, new_elitism),
        )
