"""Signing identity discovery.

Enumerates code-signing identities with ``security find-identity`` and picks
one suitable for distribution outside the App Store. The keychain is only
ever read.
"""

from __future__ import annotations

import logging
import re

from notaryforge.core.toolchain import ToolRunner, ToolUnavailableError
from notaryforge.models.artifacts import Identity

logger = logging.getLogger(__name__)

DISTRIBUTION_CLASS = "Developer ID Application"

#   1) 0123456789ABCDEF0123456789ABCDEF01234567 "Developer ID Application: Example (TEAM)"
_IDENTITY_LINE = re.compile(r'^\s*\d+\)\s+([0-9A-Fa-f]{40})\s+"(.+)"\s*$')


def parse_identities(output: str) -> list[Identity]:
    """Parse ``security find-identity`` output, keeping the reported order."""
    identities: list[Identity] = []
    for line in output.splitlines():
        match = _IDENTITY_LINE.match(line)
        if match:
            identities.append(Identity(sha1=match.group(1).upper(), name=match.group(2)))
    return identities


class IdentityResolver:
    """Finds the signing identity for a run.

    Parameters
    ----------
    runner:
        Tool runner used to call ``security``.
    override:
        Identity name or SHA-1 hash to use instead of the first match.
    """

    def __init__(self, runner: ToolRunner, override: str = "") -> None:
        self._runner = runner
        self._override = override.strip()

    def installed(self) -> list[Identity]:
        """All valid code-signing identities, in keychain order."""
        try:
            result = self._runner.run(["security", "find-identity", "-v", "-p", "codesigning"])
        except ToolUnavailableError as exc:
            logger.warning("Cannot enumerate signing identities: %s", exc)
            return []
        if not result.ok:
            logger.warning(
                "security find-identity exited %d: %s", result.exit_code, result.diagnostic
            )
            return []
        return parse_identities(result.stdout)

    def candidates(self) -> list[Identity]:
        """Installed identities of the distribution class, in keychain order."""
        return [i for i in self.installed() if i.name.startswith(DISTRIBUTION_CLASS)]

    def resolve(self) -> Identity | None:
        """Return the identity to sign with, or None to proceed unsigned."""
        candidates = self.candidates()

        if self._override:
            wanted = self._override.upper()
            for identity in candidates:
                if identity.name == self._override or identity.sha1 == wanted:
                    logger.info("Using requested signing identity: %s", identity.name)
                    return identity
            logger.warning(
                "Requested signing identity %r is not installed; %d candidate(s) found",
                self._override,
                len(candidates),
            )
            return None

        if not candidates:
            logger.warning("No '%s' identity found in the keychain", DISTRIBUTION_CLASS)
            return None

        chosen = candidates[0]
        if len(candidates) > 1:
            logger.info(
                "%d matching identities; taking the first in keychain order: %s "
                "(others: %s). Set NOTARYFORGE_IDENTITY to choose explicitly.",
                len(candidates),
                chosen.name,
                ", ".join(c.name for c in candidates[1:]),
            )
        else:
            logger.info("Signing identity: %s", chosen.name)
        return chosen
