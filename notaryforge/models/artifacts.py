"""Release artifact models — artifact, bundle, identity, signatures, submissions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


class Artifact(BaseModel):
    """The raw built executable, as produced by the (external) build step."""

    model_config = ConfigDict(frozen=True)

    path: Path
    architectures: tuple[str, ...] = ()  # empty when the probe is unavailable

    @property
    def is_universal(self) -> bool:
        return len(self.architectures) > 1


class Bundle(BaseModel):
    """An assembled ``.app`` directory.

    Layout::

        <name>.app/
            Contents/
                Info.plist
                MacOS/<executable_name>
                Resources/
    """

    model_config = ConfigDict(frozen=True)

    path: Path
    executable_name: str
    bundle_identifier: str
    metadata_keys: tuple[str, ...] = ()

    @property
    def contents(self) -> Path:
        return self.path / "Contents"

    @property
    def executable(self) -> Path:
        return self.contents / "MacOS" / self.executable_name

    @property
    def info_plist(self) -> Path:
        return self.contents / "Info.plist"

    @property
    def resources(self) -> Path:
        return self.contents / "Resources"


class Identity(BaseModel):
    """A code-signing identity reference from the local keychain."""

    model_config = ConfigDict(frozen=True)

    name: str  # e.g. "Developer ID Application: Example Ltd (ABCDE12345)"
    sha1: str = ""


class SigningOptions(BaseModel):
    """Options shared by both signing passes of a run.

    Hardened runtime and a secure timestamp are always requested; they are
    not options because notarization rejects signatures without them.
    """

    model_config = ConfigDict(frozen=True)

    identifier: str
    entitlements: Path | None = None


class Signature(BaseModel):
    """Record of one successful ``codesign`` pass."""

    model_config = ConfigDict(frozen=True)

    target: Path
    identity: Identity
    identifier: str
    entitlements: Path | None = None
    sequence_ns: int  # monotonic clock reading, strictly increasing per signer
    signed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SignatureDetails(BaseModel):
    """Fields read back from ``codesign --display``."""

    model_config = ConfigDict(frozen=True)

    identifier: str = ""
    authorities: list[str] = []
    team_identifier: str = ""


class NotaryCredentials(BaseModel):
    """Account, app-specific password and team for the notary service."""

    model_config = ConfigDict(frozen=True)

    apple_id: str
    password: SecretStr
    team_id: str

    def as_args(self) -> list[str]:
        return [
            "--apple-id", self.apple_id,
            "--password", self.password.get_secret_value(),
            "--team-id", self.team_id,
        ]


class SubmissionStatus(str, Enum):
    """Verdict of a notarization submission."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @classmethod
    def from_notary(cls, status: str) -> SubmissionStatus:
        """Map a notarytool status string onto a verdict."""
        normalized = status.strip().lower()
        if normalized == "accepted":
            return cls.ACCEPTED
        if normalized in ("invalid", "rejected"):
            return cls.REJECTED
        return cls.PENDING


class SubmissionResult(BaseModel):
    """Terminal outcome of one notarization submission."""

    model_config = ConfigDict(frozen=True)

    submission_id: str
    status: SubmissionStatus
    polls: int = 0
    log: str = ""  # diagnostic log, fetched only on rejection

    @model_validator(mode="after")
    def _terminal(self) -> SubmissionResult:
        if self.status == SubmissionStatus.PENDING:
            raise ValueError("a submission result must carry a terminal verdict")
        return self

    @property
    def accepted(self) -> bool:
        return self.status == SubmissionStatus.ACCEPTED


class StapleResult(BaseModel):
    """Outcome of attaching the notarization ticket to the bundle."""

    model_config = ConfigDict(frozen=True)

    stapled: bool
    detail: str = ""


class Distribution(BaseModel):
    """The final distributable: release directory plus its zip archive."""

    model_config = ConfigDict(frozen=True)

    release_dir: Path
    archive_path: Path
    archive_sha256: str
    readme_path: Path
