"""Fatal error taxonomy for release runs.

Every fatal error names the pipeline stage it belongs to and carries the raw
diagnostic text of the external tool that caused it. Non-fatal conditions
(no identity, no credentials, staple failure) are not exceptions; they are
recorded as ``ReleaseCondition`` values on the ``ReleaseState``.
"""

from __future__ import annotations

from typing import ClassVar


class ReleaseError(RuntimeError):
    """Base class for errors that abort a release run."""

    stage: ClassVar[str] = "release"

    def __init__(self, message: str, diagnostic: str = "") -> None:
        super().__init__(message)
        self.diagnostic = diagnostic.strip()

    def __str__(self) -> str:
        message = super().__str__()
        if self.diagnostic:
            return f"{message}\n{self.diagnostic}"
        return message


class LayoutError(ReleaseError):
    """The raw artifact or a declared resource is missing or unusable."""

    stage = "assemble"


class SignError(ReleaseError):
    """``codesign`` exited non-zero while signing."""

    stage = "sign"


class VerifyError(ReleaseError):
    """Strict recursive verification of a fresh signature failed."""

    stage = "verify"


class NotarizationError(ReleaseError):
    """Archiving, submission or polling failed, timed out, or was cancelled."""

    stage = "notarize"


class SubmissionRejected(NotarizationError):
    """The notary service returned an explicit rejected verdict."""

    def __init__(self, submission_id: str, log: str) -> None:
        reference = f"xcrun notarytool log {submission_id}"
        super().__init__(
            f"Notarization rejected for submission {submission_id} "
            f"(full log: {reference})",
            diagnostic=log or f"No log content returned; fetch it with: {reference}",
        )
        self.submission_id = submission_id
        self.log = log


class PackagingError(ReleaseError):
    """Filesystem failure while producing the distributable."""

    stage = "package"


class PipelineAborted(RuntimeError):
    """Raised by the orchestrator when a fatal error ends the run."""

    def __init__(self, stage: str, cause: ReleaseError) -> None:
        super().__init__(f"Release aborted at stage '{stage}': {cause}")
        self.stage = stage
        self.cause = cause
