"""Notaryforge data models — all Pydantic v2, all frozen (immutable)."""

from notaryforge.models.artifacts import (
    Artifact,
    Bundle,
    Distribution,
    Identity,
    NotaryCredentials,
    Signature,
    SignatureDetails,
    SigningOptions,
    StapleResult,
    SubmissionResult,
    SubmissionStatus,
)
from notaryforge.models.config import PipelineConfig, RunConfig
from notaryforge.models.reports import (
    NEXT_ACTIONS,
    ReleaseCondition,
    ReleaseReport,
    ReleaseState,
    TrustLevel,
)
from notaryforge.models.stages import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    PipelineState,
    StateTransition,
)

__all__ = [
    # artifacts
    "Artifact",
    "Bundle",
    "Identity",
    "SigningOptions",
    "Signature",
    "SignatureDetails",
    "NotaryCredentials",
    "SubmissionStatus",
    "SubmissionResult",
    "StapleResult",
    "Distribution",
    # stages
    "PipelineState",
    "StateTransition",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    # reports
    "TrustLevel",
    "ReleaseCondition",
    "ReleaseState",
    "ReleaseReport",
    "NEXT_ACTIONS",
    # config
    "PipelineConfig",
    "RunConfig",
]
