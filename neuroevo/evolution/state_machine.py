"""Run state machine — enforces the order of phases in an evolution run."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Awaitable

from neuroevo.exceptions import InvalidStateTransitionError
from neuroevo.types import RunId


class RunState(str, Enum):
    SEEDING = "seeding"
    EVALUATING = "evaluating"
    REPRODUCING = "reproducing"
    SURVIVOR_SELECTION = "survivor_selection"
    TERMINATED = "terminated"
    FAILED = "failed"
    CANCELLED = "cancelled"


TransitionCallback = Callable[[RunId, RunState, RunState], Awaitable[None]]

VALID_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.SEEDING: {RunState.EVALUATING, RunState.FAILED, RunState.CANCELLED},
    RunState.EVALUATING: {
        RunState.REPRODUCING,
        RunState.TERMINATED,
        RunState.FAILED,
        RunState.CANCELLED,
    },
    RunState.REPRODUCING: {RunState.SURVIVOR_SELECTION, RunState.FAILED, RunState.CANCELLED},
    RunState.SURVIVOR_SELECTION: {RunState.EVALUATING, RunState.FAILED, RunState.CANCELLED},
    RunState.TERMINATED: set(),  # terminal
    RunState.FAILED: set(),  # terminal
    RunState.CANCELLED: set(),  # terminal
}

TERMINAL_STATES = frozenset(s for s, targets in VALID_TRANSITIONS.items() if not targets)


class RunStateMachine:
    """Tracks the phase of a single run and notifies listeners on change."""

    def __init__(self, run_id: RunId):
        self.run_id = run_id
        self._state = RunState.SEEDING
        self._listeners: list[TransitionCallback] = []
        self._lock = asyncio.Lock()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state in TERMINAL_STATES

    async def transition(self, target: RunState) -> None:
        async with self._lock:
            valid = VALID_TRANSITIONS.get(self._state, set())
            if target not in valid:
                raise InvalidStateTransitionError(
                    f"Cannot transition run {self.run_id} "
                    f"from {self._state.value} to {target.value}"
                )
            old = self._state
            self._state = target
        for listener in self._listeners:
            await listener(self.run_id, old, target)

    def on_transition(self, callback: TransitionCallback) -> None:
        self._listeners.append(callback)
