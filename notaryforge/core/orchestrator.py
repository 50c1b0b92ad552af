"""Release orchestrator — drives one run through the release state machine.

    Built -> Assembled -> Unsigned ----------------------------------> Packaged
                       -> Signed -> Verified -> NotNotarized --------> Packaged
                                             -> Submitted -> Accepted -> Stapled | StapleFailed -> Packaged
                                                          -> Rejected -> Aborted

Optional steps (signing, notarization, stapling) degrade the run when their
preconditions are missing. Mandatory steps (assembly, verification of a
signed bundle, a rejected verdict, packaging) abort it, and an aborted run
leaves no release directory or archive behind in the output location.

``resign()`` enters the same machine with an existing ``.app``: the bundle is
copied into the release directory in place of assembly, and the run
continues from ``Assembled``.

Components are injected so each can be replaced with a fake in tests. The
orchestrator is the only place that branches on their outcomes.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from notaryforge.config import ReleaseSettings
from notaryforge.core.bundle import BundleAssembler, read_bundle_info
from notaryforge.core.errors import PipelineAborted, ReleaseError, SubmissionRejected
from notaryforge.core.hasher import bundle_layout_digest
from notaryforge.core.identity import IdentityResolver
from notaryforge.core.notary import NotarizationClient
from notaryforge.core.packager import Packager
from notaryforge.core.signer import Signer
from notaryforge.core.stage_machine import ReleaseStateMachine
from notaryforge.core.stapler import TicketStapler
from notaryforge.core.toolchain import SubprocessToolRunner, ToolRunner
from notaryforge.core.verifier import SignatureVerifier
from notaryforge.models.artifacts import (
    Artifact,
    Bundle,
    Distribution,
    Identity,
    Signature,
    SignatureDetails,
    SubmissionResult,
)
from notaryforge.models.config import PipelineConfig, RunConfig
from notaryforge.models.reports import (
    NEXT_ACTIONS,
    ReleaseCondition,
    ReleaseReport,
    ReleaseState,
)
from notaryforge.models.stages import PipelineState

logger = logging.getLogger(__name__)


class ReleaseOrchestrator:
    """Runs the release pipeline for one application.

    Parameters
    ----------
    config:
        What to release and where to put it.
    settings:
        Environment-level settings (credentials, identity override, polling).
        Read from the environment if not provided.
    runner:
        Tool runner shared by the default components.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        settings: ReleaseSettings | None = None,
        runner: ToolRunner | None = None,
        run_id: str | None = None,
        identity_resolver: IdentityResolver | None = None,
        assembler: BundleAssembler | None = None,
        signer: Signer | None = None,
        verifier: SignatureVerifier | None = None,
        notary: NotarizationClient | None = None,
        stapler: TicketStapler | None = None,
        packager: Packager | None = None,
    ) -> None:
        self.config = config
        self.settings = settings or ReleaseSettings()
        runner = runner or SubprocessToolRunner()

        # Components
        self.identity_resolver = identity_resolver or IdentityResolver(
            runner, override=self.settings.identity
        )
        self.assembler = assembler or BundleAssembler(runner)
        self.signer = signer or Signer(runner)
        self.verifier = verifier or SignatureVerifier(runner)
        self.notary = notary or NotarizationClient.from_settings(runner, self.settings)
        self.stapler = stapler or TicketStapler(runner)
        self.packager = packager or Packager()

        # Run state
        self.run_config = (
            RunConfig(run_id=run_id, pipeline_config=config)
            if run_id
            else RunConfig(pipeline_config=config)
        )
        self.machine = ReleaseStateMachine(self.run_config.run_id)
        self.state = ReleaseState()
        self.artifact: Artifact | None = None
        self.bundle: Bundle | None = None
        self.identity: Identity | None = None
        self.signatures: tuple[Signature, ...] = ()
        self.signature_details: SignatureDetails | None = None
        self.submission: SubmissionResult | None = None

    @property
    def run_id(self) -> str:
        return self.run_config.run_id

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> ReleaseReport:
        """Execute the whole pipeline and return the terminal report.

        Raises ``PipelineAborted`` naming the failed stage on any fatal error.
        """
        self._begin("Releasing", self.config.artifact_path)
        return self._release(self._assemble())

    def resign(self, source: Path) -> ReleaseReport:
        """Re-sign, notarize and package an existing ``.app`` without rebuilding it.

        The bundle is copied into the release directory and enters the
        pipeline at ``Assembled``; signing, notarization and packaging then
        follow the same policy as ``run()``.
        """
        self._begin("Re-signing", source)
        return self._release(self._adopt(Path(source)))

    def _begin(self, action: str, source: Path) -> None:
        if self.machine.state != PipelineState.BUILT:
            raise RuntimeError(f"Run {self.run_id} has already been executed")
        logger.info(
            "[%s] %s %s %s from %s",
            self.run_id,
            action,
            self.config.app_name,
            self.config.version,
            source,
        )

    def _release(self, bundle: Bundle) -> ReleaseReport:
        self.identity = self.identity_resolver.resolve()
        if self.identity is None:
            self.state = self.state.degrade(ReleaseCondition.IDENTITY_NOT_FOUND)
            self.machine.transition(PipelineState.UNSIGNED, "no signing identity")
        else:
            self._sign(bundle, self.identity)
            self._verify(bundle)
            self._notarize(bundle)

        distribution = self._package(bundle)
        return self._report(bundle, distribution)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _assemble(self) -> Bundle:
        # A bad input artifact must not destroy the previous release
        with self._stage("assemble", discard=False):
            self.artifact = self.assembler.inspect(self.config.artifact_path)
        with self._stage("assemble"):
            self.bundle = self.assembler.assemble(self.artifact, self.config)
        self.machine.transition(PipelineState.ASSEMBLED, str(self.bundle.path))
        return self.bundle

    def _adopt(self, source: Path) -> Bundle:
        with self._stage("assemble", discard=False):
            info = read_bundle_info(source)
            self.artifact = self.assembler.inspect(
                source / "Contents" / "MacOS" / info["CFBundleExecutable"]
            )
        with self._stage("assemble"):
            self.bundle = self.assembler.adopt(source, self.config)
        self.machine.transition(PipelineState.ASSEMBLED, f"existing bundle {source}")
        return self.bundle

    def _sign(self, bundle: Bundle, identity: Identity) -> None:
        with self._stage("sign"):
            self.signatures = self.signer.sign_bundle(
                bundle, identity, self.config.entitlements_path
            )
        self.state = self.state.mark("signed")
        self.machine.transition(PipelineState.SIGNED, identity.name)

    def _verify(self, bundle: Bundle) -> None:
        with self._stage("verify"):
            self.verifier.verify(bundle)
        self.state = self.state.mark("verified")
        self.machine.transition(PipelineState.VERIFIED)
        self.signature_details = self.verifier.describe(bundle)

    def _notarize(self, bundle: Bundle) -> None:
        credentials = self.settings.credentials()
        if credentials is None:
            missing = ", ".join(self.settings.missing_credentials())
            logger.warning("Notarization skipped: %s not set", missing)
            self.state = self.state.degrade(ReleaseCondition.CREDENTIALS_MISSING)
            self.machine.transition(PipelineState.NOT_NOTARIZED, f"missing {missing}")
            return

        self.machine.transition(PipelineState.SUBMITTED)
        with self._stage("notarize"):
            self.submission = self.notary.submit(
                bundle, credentials, archive_path=self.config.notarization_archive
            )
            if not self.submission.accepted:
                self.machine.transition(
                    PipelineState.REJECTED, self.submission.submission_id
                )
                raise SubmissionRejected(
                    self.submission.submission_id, self.submission.log
                )
        self.state = self.state.mark("notarized")
        self.machine.transition(PipelineState.ACCEPTED, self.submission.submission_id)

        staple = self.stapler.staple(bundle)
        if staple.stapled:
            self.state = self.state.mark("stapled")
            self.machine.transition(PipelineState.STAPLED)
        else:
            self.state = self.state.degrade(ReleaseCondition.STAPLE_FAILED)
            self.machine.transition(PipelineState.STAPLE_FAILED, staple.detail)

    def _package(self, bundle: Bundle) -> Distribution:
        with self._stage("package"):
            distribution = self.packager.package(
                bundle, self.config, self.state.trust_level
            )
        self.machine.transition(PipelineState.PACKAGED, str(distribution.archive_path))
        return distribution

    def _report(self, bundle: Bundle, distribution: Distribution) -> ReleaseReport:
        level = self.state.trust_level
        return ReleaseReport(
            run_id=self.run_id,
            app_name=self.config.app_name,
            version=self.config.version,
            trust_level=level,
            state=self.state,
            next_action=NEXT_ACTIONS[level],
            bundle_path=bundle.path,
            archive_path=distribution.archive_path,
            archive_sha256=distribution.archive_sha256,
            layout_digest=bundle_layout_digest(bundle.path),
            architectures=self.artifact.architectures if self.artifact else (),
            universal=self.artifact.is_universal if self.artifact else False,
            identity=self.identity.name if self.identity else "",
            signature=self.signature_details,
            submission_id=self.submission.submission_id if self.submission else "",
            transitions=self.machine.history,
        )

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    @contextmanager
    def _stage(self, stage: str, *, discard: bool = True) -> Iterator[None]:
        try:
            yield
        except ReleaseError as exc:
            logger.error("[%s] Stage '%s' failed: %s", self.run_id, stage, exc)
            if discard:
                self._discard_outputs()
            self.machine.transition(PipelineState.ABORTED, f"{stage}: {type(exc).__name__}")
            raise PipelineAborted(stage, exc) from exc

    def _discard_outputs(self) -> None:
        """Remove everything this run wrote to the output location.

        Cleanup failures are logged and do not replace the stage error.
        """
        release_dir = self.config.release_dir
        leftovers = (
            Path(f"{self.config.output_dir / self.config.release_name}.zip"),
            self.config.notarization_archive,
        )
        try:
            if release_dir.is_dir():
                shutil.rmtree(release_dir)
                logger.info("Removed incomplete release %s", release_dir)
        except OSError as exc:
            logger.error("Could not remove incomplete release %s: %s", release_dir, exc)
        for path in leftovers:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.error("Could not remove %s: %s", path, exc)
