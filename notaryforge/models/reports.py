"""Release state and terminal report models.

The trust level is the externally meaningful outcome of a run. It is
derived from the ``ReleaseState`` flags only.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from notaryforge.models.artifacts import SignatureDetails
from notaryforge.models.stages import StateTransition


class TrustLevel(str, Enum):
    """Qualitative trust level reached by a release."""

    UNSIGNED = "unsigned"
    SIGNED_ONLY = "signed-only"
    NOTARIZED_ONLINE_ONLY = "notarized-online-only"
    NOTARIZED_OFFLINE_CAPABLE = "notarized-offline-capable"


class ReleaseCondition(str, Enum):
    """Non-fatal conditions that degrade a run instead of aborting it."""

    IDENTITY_NOT_FOUND = "identity_not_found"
    CREDENTIALS_MISSING = "credentials_missing"
    STAPLE_FAILED = "staple_failed"


_FLAGS = ("signed", "verified", "notarized", "stapled")


class ReleaseState(BaseModel):
    """Flags carried through one run. Each flag only ever goes False -> True.

    The model is frozen; ``mark()`` and ``degrade()`` return updated copies.
    """

    model_config = ConfigDict(frozen=True)

    signed: bool = False
    verified: bool = False
    notarized: bool = False
    stapled: bool = False
    conditions: tuple[ReleaseCondition, ...] = ()

    def mark(self, flag: str) -> ReleaseState:
        if flag not in _FLAGS:
            raise ValueError(f"Unknown release flag: {flag!r}")
        return self.model_copy(update={flag: True})

    def degrade(self, condition: ReleaseCondition) -> ReleaseState:
        if condition in self.conditions:
            return self
        return self.model_copy(update={"conditions": (*self.conditions, condition)})

    @property
    def trust_level(self) -> TrustLevel:
        if self.notarized and self.stapled:
            return TrustLevel.NOTARIZED_OFFLINE_CAPABLE
        if self.notarized:
            return TrustLevel.NOTARIZED_ONLINE_ONLY
        if self.signed and self.verified:
            return TrustLevel.SIGNED_ONLY
        return TrustLevel.UNSIGNED


NEXT_ACTIONS: dict[TrustLevel, str] = {
    TrustLevel.UNSIGNED: (
        "unsigned: install a 'Developer ID Application' certificate in the "
        "keychain and re-run to sign"
    ),
    TrustLevel.SIGNED_ONLY: (
        "signed only: set APPLE_ID, APPLE_PASSWORD and TEAM_ID and re-run "
        "to notarize"
    ),
    TrustLevel.NOTARIZED_ONLINE_ONLY: (
        "notarized, ticket not stapled: first launch needs network access; "
        "run 'xcrun stapler staple' on the bundle and re-package for offline use"
    ),
    TrustLevel.NOTARIZED_OFFLINE_CAPABLE: (
        "notarized and stapled: ready to distribute, works fully offline"
    ),
}


class ReleaseReport(BaseModel):
    """Terminal report of a packaged release."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    app_name: str
    version: str
    trust_level: TrustLevel
    state: ReleaseState
    next_action: str
    bundle_path: Path
    archive_path: Path
    archive_sha256: str
    layout_digest: str
    architectures: tuple[str, ...] = ()
    universal: bool = False
    identity: str = ""
    signature: SignatureDetails | None = None
    submission_id: str = ""
    transitions: list[StateTransition] = []
    finished_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
