"""Custom exception hierarchy for neuroevo."""

from __future__ import annotations

from typing import Any


class NeuroevoError(Exception):
    """Base for all neuroevo errors."""


class PatternNotFoundError(NeuroevoError):
    """No pattern with the given ID exists in the store."""

    def __init__(self, pattern_id: str) -> None:
        super().__init__(f"Base pattern {pattern_id} not found")
        self.pattern_id = pattern_id


class PatternStoreError(NeuroevoError):
    """The pattern store failed to read or write."""


class GenotypeConversionError(NeuroevoError):
    """A genotype could not be turned into a valid pattern."""


class SimulationError(NeuroevoError):
    """Emergent-behavior simulation failed for one pattern."""


class InvalidStateTransitionError(NeuroevoError):
    """Invalid evolution run state transition."""


class EvolutionFailed(NeuroevoError):
    """An evolution run aborted. Nothing was persisted."""

    def __init__(
        self,
        reason: str,
        partial_lineage: list[Any] | None = None,
        base_pattern_id: str = "",
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.partial_lineage = list(partial_lineage or [])
        self.base_pattern_id = base_pattern_id


class EvolutionCancelled(NeuroevoError):
    """An evolution run was cancelled or timed out at a generation boundary."""

    def __init__(
        self,
        reason: str = "cancelled",
        partial_lineage: list[Any] | None = None,
        base_pattern_id: str = "",
    ) -> None:
        super().__init__(f"Evolution {reason}")
        self.reason = reason
        self.partial_lineage = list(partial_lineage or [])
        self.base_pattern_id = base_pattern_id
