"""Deterministic release state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- No transition out of a terminal state
- Every transition recorded in the run's transition history
"""

from __future__ import annotations

import logging

from notaryforge.models.stages import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    PipelineState,
    StateTransition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class ReleaseStateMachine:
    """Tracks the state of one release run.

    Parameters
    ----------
    run_id:
        Identifier used in log lines.
    """

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        self._state = PipelineState.BUILT
        self._history: list[StateTransition] = []

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> list[StateTransition]:
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def transition(self, target: PipelineState, note: str = "") -> StateTransition:
        """Move to ``target``, recording the transition.

        Raises ``InvalidTransitionError`` if the table does not allow it.
        """
        allowed = VALID_TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition from {self._state.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
        entry = StateTransition(from_state=self._state, to_state=target, note=note)
        self._history.append(entry)
        logger.info(
            "[%s] %s -> %s%s",
            self.run_id,
            self._state.value,
            target.value,
            f" ({note})" if note else "",
        )
        self._state = target
        return entry

