"""Local signature verification.

Runs before notarization: a signature that fails strict local checks would
be rejected by the notary service anyway, after minutes of waiting and a
spent submission.
"""

from __future__ import annotations

import logging

from notaryforge.core.errors import VerifyError
from notaryforge.core.toolchain import ToolRunner, ToolUnavailableError
from notaryforge.models.artifacts import Bundle, SignatureDetails

logger = logging.getLogger(__name__)


def parse_signature_details(output: str) -> SignatureDetails:
    """Pick Identifier / Authority / TeamIdentifier out of ``codesign -d`` output."""
    identifier = ""
    team = ""
    authorities: list[str] = []
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        if key == "Identifier":
            identifier = value.strip()
        elif key == "Authority":
            authorities.append(value.strip())
        elif key == "TeamIdentifier":
            team = value.strip()
    return SignatureDetails(
        identifier=identifier, authorities=authorities, team_identifier=team
    )


class SignatureVerifier:
    def __init__(self, runner: ToolRunner) -> None:
        self._runner = runner

    def verify(self, bundle: Bundle) -> None:
        """Strictly verify every nested signature. Raises ``VerifyError``."""
        try:
            result = self._runner.run(
                ["codesign", "--verify", "--deep", "--strict", "--verbose=2", bundle.path]
            )
        except ToolUnavailableError as exc:
            raise VerifyError("codesign is not available", str(exc)) from exc
        if not result.ok:
            raise VerifyError(
                f"Signature verification failed for {bundle.path}", result.diagnostic
            )
        logger.info("Signature verified: %s", bundle.path)

    def describe(self, bundle: Bundle) -> SignatureDetails | None:
        """Read back signature details; None if codesign cannot display them."""
        try:
            result = self._runner.run(["codesign", "--display", "--verbose=4", bundle.path])
        except ToolUnavailableError:
            return None
        if not result.ok:
            logger.debug("codesign --display failed: %s", result.diagnostic)
            return None
        # codesign writes the details to stderr
        return parse_signature_details(result.stderr or result.stdout)
