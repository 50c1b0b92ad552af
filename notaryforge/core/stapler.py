"""Ticket stapling.

Stapling embeds the notarization ticket so Gatekeeper can check the bundle
offline. A failure here never aborts the run: the bundle is still notarized
and verifiable online.
"""

from __future__ import annotations

import logging

from notaryforge.core.toolchain import ToolRunner, ToolUnavailableError
from notaryforge.models.artifacts import Bundle, StapleResult

logger = logging.getLogger(__name__)


class TicketStapler:
    def __init__(self, runner: ToolRunner) -> None:
        self._runner = runner

    def staple(self, bundle: Bundle) -> StapleResult:
        try:
            result = self._runner.run(["xcrun", "stapler", "staple", bundle.path])
        except ToolUnavailableError as exc:
            logger.warning("Could not staple ticket: %s", exc)
            return StapleResult(stapled=False, detail=str(exc))
        if not result.ok:
            logger.warning("Could not staple ticket: %s", result.diagnostic)
            return StapleResult(stapled=False, detail=result.diagnostic)
        logger.info("Notarization ticket stapled to %s", bundle.path)
        return StapleResult(stapled=True)
