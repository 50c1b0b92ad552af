"""Code signing with ``codesign``.

A bundle is signed in two passes with the same identity, identifier and
entitlements: the executable first, then the bundle container. The outer
signature seals the already-signed executable, so the order cannot be
reversed.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from notaryforge.core.errors import SignError
from notaryforge.core.toolchain import ToolRunner, ToolUnavailableError
from notaryforge.models.artifacts import Bundle, Identity, Signature, SigningOptions

logger = logging.getLogger(__name__)


class Signer:
    """Applies hardened-runtime, timestamped signatures."""

    def __init__(self, runner: ToolRunner) -> None:
        self._runner = runner
        self._last_ns = 0

    def _next_sequence(self) -> int:
        # Strictly increasing even if the clock does not advance between calls
        self._last_ns = max(time.monotonic_ns(), self._last_ns + 1)
        return self._last_ns

    def remove_signature(self, target: Path) -> None:
        """Strip any existing signature. Unsigned targets are not an error."""
        try:
            result = self._runner.run(["codesign", "--remove-signature", target])
        except ToolUnavailableError as exc:
            raise SignError("codesign is not available", str(exc)) from exc
        if not result.ok:
            logger.debug("No signature removed from %s: %s", target, result.diagnostic)

    def sign(self, target: Path, identity: Identity, options: SigningOptions) -> Signature:
        """Sign ``target``, replacing any previous signature."""
        self.remove_signature(target)

        args: list[str | Path] = [
            "codesign",
            "--force",
            "--sign", identity.name,
            "--identifier", options.identifier,
            "--options", "runtime",
            "--timestamp",
        ]
        if options.entitlements is not None:
            args += ["--entitlements", options.entitlements]
        args.append(target)

        try:
            result = self._runner.run(args)
        except ToolUnavailableError as exc:
            raise SignError("codesign is not available", str(exc)) from exc
        if not result.ok:
            raise SignError(f"codesign failed for {target}", result.diagnostic)

        logger.info("Signed %s", target)
        return Signature(
            target=target,
            identity=identity,
            identifier=options.identifier,
            entitlements=options.entitlements,
            sequence_ns=self._next_sequence(),
        )

    def sign_bundle(
        self, bundle: Bundle, identity: Identity, entitlements: Path | None = None
    ) -> tuple[Signature, Signature]:
        """Sign the executable, then the container. Returns both signatures."""
        options = SigningOptions(
            identifier=bundle.bundle_identifier, entitlements=entitlements
        )
        inner = self.sign(bundle.executable, identity, options)
        outer = self.sign(bundle.path, identity, options)
        return inner, outer
