"""Deterministic pipeline state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- A single terminal outcome per run: DONE or FAILED(stage, error)
- Every transition recorded and reported to the optional observer
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from beepack.models.stages import (
    VALID_TRANSITIONS,
    PipelineState,
    StageTransition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class StageMachine:
    """Tracks one run through Idle -> ... -> Done/Failed.

    Parameters
    ----------
    on_transition:
        Called with every recorded ``StageTransition``.
    """

    def __init__(
        self, on_transition: Callable[[StageTransition], None] | None = None
    ) -> None:
        self._state = PipelineState.IDLE
        self._history: list[StageTransition] = []
        self._on_transition = on_transition
        self._failure: StageTransition | None = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> list[StageTransition]:
        return list(self._history)

    @property
    def failure(self) -> StageTransition | None:
        """The FAILED transition, if the run failed."""
        return self._failure

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self._state]

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def advance(self, target: PipelineState) -> StageTransition:
        """Move to *target*; FAILED must go through ``fail()``."""
        if target == PipelineState.FAILED:
            raise InvalidTransitionError("Use fail() to enter the failed state")
        return self._transition(target)

    def fail(self, error: BaseException) -> StageTransition:
        """Record that the current stage failed with *error*."""
        entry = self._transition(
            PipelineState.FAILED,
            failed_stage=self._state,
            error=str(error),
        )
        self._failure = entry
        return entry

    def _transition(
        self,
        target: PipelineState,
        *,
        failed_stage: PipelineState | None = None,
        error: str | None = None,
    ) -> StageTransition:
        allowed = VALID_TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition from {self._state.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
        entry = StageTransition(
            from_state=self._state,
            to_state=target,
            failed_stage=failed_stage,
            error=error,
        )
        self._history.append(entry)
        self._state = target
        logger.debug("Pipeline %s -> %s", entry.from_state.value, target.value)
        if self._on_transition is not None:
            self._on_transition(entry)
        return entry
