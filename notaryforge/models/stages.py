"""Release pipeline state model — deterministic transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PipelineState(str, Enum):
    """States of one release run."""

    BUILT = "built"
    ASSEMBLED = "assembled"
    UNSIGNED = "unsigned"
    SIGNED = "signed"
    VERIFIED = "verified"
    NOT_NOTARIZED = "not_notarized"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    STAPLED = "stapled"
    STAPLE_FAILED = "staple_failed"
    PACKAGED = "packaged"
    ABORTED = "aborted"


# Valid state transitions, enforced by ReleaseStateMachine.
# PACKAGED and ABORTED are terminal. ACCEPTED cannot abort: both staple
# outcomes continue to packaging.
VALID_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.BUILT: {PipelineState.ASSEMBLED, PipelineState.ABORTED},
    PipelineState.ASSEMBLED: {
        PipelineState.SIGNED,
        PipelineState.UNSIGNED,
        PipelineState.ABORTED,
    },
    PipelineState.UNSIGNED: {PipelineState.PACKAGED, PipelineState.ABORTED},
    PipelineState.SIGNED: {PipelineState.VERIFIED, PipelineState.ABORTED},
    PipelineState.VERIFIED: {
        PipelineState.SUBMITTED,
        PipelineState.NOT_NOTARIZED,
        PipelineState.ABORTED,
    },
    PipelineState.NOT_NOTARIZED: {PipelineState.PACKAGED, PipelineState.ABORTED},
    PipelineState.SUBMITTED: {
        PipelineState.ACCEPTED,
        PipelineState.REJECTED,
        PipelineState.ABORTED,
    },
    PipelineState.ACCEPTED: {PipelineState.STAPLED, PipelineState.STAPLE_FAILED},
    PipelineState.REJECTED: {PipelineState.ABORTED},
    PipelineState.STAPLED: {PipelineState.PACKAGED, PipelineState.ABORTED},
    PipelineState.STAPLE_FAILED: {PipelineState.PACKAGED, PipelineState.ABORTED},
    PipelineState.PACKAGED: set(),  # terminal
    PipelineState.ABORTED: set(),  # terminal
}

TERMINAL_STATES: frozenset[PipelineState] = frozenset(
    {PipelineState.PACKAGED, PipelineState.ABORTED}
)


class StateTransition(BaseModel):
    """Records a single state transition for the run's audit trail."""

    model_config = ConfigDict(frozen=True)

    from_state: PipelineState
    to_state: PipelineState
    note: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
