"""Unit tests for the ReleaseOrchestrator — branching, degradation, abort cleanup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from notaryforge.config import ReleaseSettings
from notaryforge.core.errors import (
    LayoutError,
    PipelineAborted,
    SignError,
    SubmissionRejected,
    VerifyError,
)
from notaryforge.core.notary import NotarizationClient
from notaryforge.core.orchestrator import ReleaseOrchestrator
from notaryforge.models.config import PipelineConfig
from notaryforge.models.reports import ReleaseCondition, TrustLevel
from notaryforge.models.stages import PipelineState
from toolfakes import (
    DEV_ID,
    DEV_ID_SHA,
    FakeToolRunner,
    fail,
    make_app_bundle,
    ok,
    script_accepted,
    script_identity,
    script_rejected,
)


def _orchestrator(
    config: PipelineConfig, settings: ReleaseSettings, runner: FakeToolRunner
) -> ReleaseOrchestrator:
    notary = NotarizationClient.from_settings(runner, settings, sleep=lambda seconds: None)
    return ReleaseOrchestrator(
        config, settings=settings, runner=runner, run_id="nf-test", notary=notary
    )


class TestOrchestratorSetup:
    def test_run_id(self, pipeline_config, settings, runner):
        assert _orchestrator(pipeline_config, settings, runner).run_id == "nf-test"

    def test_generated_run_id(self, pipeline_config, settings, runner):
        orch = ReleaseOrchestrator(pipeline_config, settings=settings, runner=runner)
        assert orch.run_id.startswith("nf-")

    def test_identity_override_from_settings(self, pipeline_config, runner):
        settings = ReleaseSettings(_env_file=None, identity=DEV_ID_SHA)
        script_identity(runner, ("1" * 40, "Developer ID Application: A (A)"), (DEV_ID_SHA, DEV_ID))
        orch = _orchestrator(pipeline_config, settings, runner)
        orch.run()
        assert orch.identity is not None
        assert orch.identity.name == DEV_ID

    def test_run_twice_rejected(self, pipeline_config, settings, runner):
        orch = _orchestrator(pipeline_config, settings, runner)
        orch.run()
        with pytest.raises(RuntimeError):
            orch.run()


class TestDegradation:
    def test_no_identity(self, pipeline_config, settings, runner):
        script_identity(runner)
        orch = _orchestrator(pipeline_config, settings, runner)
        report = orch.run()
        assert report.trust_level == TrustLevel.UNSIGNED
        assert ReleaseCondition.IDENTITY_NOT_FOUND in report.state.conditions
        assert runner.calls_to("codesign --sign") == []
        assert runner.calls_to("notarytool submit") == []
        assert orch.machine.state == PipelineState.PACKAGED

    def test_no_credentials(self, pipeline_config, settings, runner):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        report = _orchestrator(pipeline_config, settings, runner).run()
        assert report.trust_level == TrustLevel.SIGNED_ONLY
        assert report.state.conditions == (ReleaseCondition.CREDENTIALS_MISSING,)
        assert "APPLE_ID" in report.next_action
        assert runner.calls_to("ditto") == []

    def test_staple_failure(self, pipeline_config, notary_settings, runner):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        script_accepted(runner)
        runner.on("stapler staple", fail("Could not validate ticket"))
        report = _orchestrator(pipeline_config, notary_settings, runner).run()
        assert report.trust_level == TrustLevel.NOTARIZED_ONLINE_ONLY
        assert report.state.conditions == (ReleaseCondition.STAPLE_FAILED,)
        assert report.transitions[-2].to_state == PipelineState.STAPLE_FAILED


class TestAbort:
    def test_verify_failure(self, pipeline_config, notary_settings, runner):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        runner.on("codesign --verify", fail("invalid signature"))
        orch = _orchestrator(pipeline_config, notary_settings, runner)
        with pytest.raises(PipelineAborted) as info:
            orch.run()
        assert info.value.stage == "verify"
        assert isinstance(info.value.cause, VerifyError)
        assert orch.machine.state == PipelineState.ABORTED
        assert runner.calls_to("notarytool submit") == []
        assert not pipeline_config.release_dir.exists()

    def test_rejection(self, pipeline_config, notary_settings, runner):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        script_rejected(runner, "S1", log="The executable does not have the hardened runtime enabled.")
        orch = _orchestrator(pipeline_config, notary_settings, runner)
        with pytest.raises(PipelineAborted) as info:
            orch.run()
        assert isinstance(info.value.cause, SubmissionRejected)
        assert info.value.cause.submission_id == "S1"
        states = [t.to_state for t in orch.machine.history]
        assert states[-2:] == [PipelineState.REJECTED, PipelineState.ABORTED]
        assert runner.calls_to("stapler staple") == []
        assert not pipeline_config.notarization_archive.exists()

    def test_bad_artifact_keeps_previous_release(self, pipeline_config, settings, runner, tmp_path):
        previous = pipeline_config.release_dir / "README.txt"
        previous.parent.mkdir(parents=True)
        previous.write_text("last good release")
        config = pipeline_config.model_copy(update={"artifact_path": tmp_path / "missing"})
        with pytest.raises(PipelineAborted) as info:
            _orchestrator(config, settings, runner).run()
        assert info.value.stage == "assemble"
        assert previous.read_text() == "last good release"

    def test_abort_message_names_stage(self, pipeline_config, settings, runner):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        runner.on("codesign --sign", fail("errSecInternalComponent"))
        with pytest.raises(PipelineAborted) as info:
            _orchestrator(pipeline_config, settings, runner).run()
        message = str(info.value)
        assert message.startswith("Release aborted at stage 'sign'")
        assert "errSecInternalComponent" in message

    def test_stale_file_at_release_path(self, pipeline_config, settings, runner):
        script_identity(runner)
        pipeline_config.output_dir.mkdir(parents=True)
        pipeline_config.release_dir.write_text("left by something else")
        report = _orchestrator(pipeline_config, settings, runner).run()
        assert report.trust_level == TrustLevel.UNSIGNED
        assert pipeline_config.bundle_path.is_dir()

    def test_unwritable_release_path_aborts_assembly(
        self, pipeline_config, settings, runner, monkeypatch
    ):
        pipeline_config.release_dir.mkdir(parents=True)

        def _busy(path, *args, **kwargs):
            raise OSError(16, "Resource busy", str(path))

        monkeypatch.setattr("notaryforge.core.bundle.shutil.rmtree", _busy)
        with pytest.raises(PipelineAborted) as info:
            _orchestrator(pipeline_config, settings, runner).run()
        assert info.value.stage == "assemble"
        assert isinstance(info.value.cause, LayoutError)

    def test_cleanup_failure_keeps_stage_error(
        self, pipeline_config, settings, runner, monkeypatch, caplog
    ):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        runner.on("codesign --sign", fail("errSecInternalComponent"))

        def _denied(path, *args, **kwargs):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr("notaryforge.core.orchestrator.shutil.rmtree", _denied)
        with caplog.at_level(logging.ERROR, logger="notaryforge"):
            with pytest.raises(PipelineAborted) as info:
                _orchestrator(pipeline_config, settings, runner).run()
        assert info.value.stage == "sign"
        assert isinstance(info.value.cause, SignError)
        assert "Could not remove incomplete release" in caplog.text


class TestReport:
    def test_offline_capable_report(self, pipeline_config, notary_settings, runner):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        script_accepted(runner, "sub-77")
        runner.on("lipo", fail("lipo: can't figure out the architecture type"))
        report = _orchestrator(pipeline_config, notary_settings, runner).run()
        assert report.trust_level == TrustLevel.NOTARIZED_OFFLINE_CAPABLE
        assert report.identity == DEV_ID
        assert report.submission_id == "sub-77"
        assert report.architectures == ()
        assert report.archive_path == Path(pipeline_config.output_dir / "Example-1.2.0.zip")
        assert report.layout_digest.startswith("sha256:")
        assert [t.to_state for t in report.transitions] == [
            PipelineState.ASSEMBLED,
            PipelineState.SIGNED,
            PipelineState.VERIFIED,
            PipelineState.SUBMITTED,
            PipelineState.ACCEPTED,
            PipelineState.STAPLED,
            PipelineState.PACKAGED,
        ]

    def test_universal_artifact(self, pipeline_config, settings, runner):
        script_identity(runner)
        runner.on("lipo", ok("x86_64 arm64\n"))
        report = _orchestrator(pipeline_config, settings, runner).run()
        assert report.architectures == ("x86_64", "arm64")
        assert report.universal is True


class TestResign:
    def test_existing_bundle_enters_at_assembled(
        self, pipeline_config, notary_settings, runner, tmp_path
    ):
        source = make_app_bundle(tmp_path / "previous")
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        script_accepted(runner)
        orch = _orchestrator(pipeline_config, notary_settings, runner)
        report = orch.resign(source)

        assert report.trust_level == TrustLevel.NOTARIZED_OFFLINE_CAPABLE
        assert report.transitions[0].to_state == PipelineState.ASSEMBLED
        assert "existing bundle" in report.transitions[0].note
        assert report.bundle_path == pipeline_config.bundle_path
        inner, outer = orch.signatures
        assert inner.target == pipeline_config.bundle_path / "Contents" / "MacOS" / "legacy-bin"
        assert outer.target == pipeline_config.bundle_path
        assert len(runner.calls_to("codesign --remove-signature")) == 2
        assert report.archive_path.is_file()

    def test_without_identity_is_unsigned(self, pipeline_config, settings, runner, tmp_path):
        source = make_app_bundle(tmp_path / "previous")
        script_identity(runner)
        report = _orchestrator(pipeline_config, settings, runner).resign(source)
        assert report.trust_level == TrustLevel.UNSIGNED

    def test_not_a_bundle(self, pipeline_config, settings, runner, tmp_path):
        with pytest.raises(PipelineAborted) as info:
            _orchestrator(pipeline_config, settings, runner).resign(tmp_path / "missing.app")
        assert info.value.stage == "assemble"

    def test_resign_after_run_rejected(self, pipeline_config, settings, runner, tmp_path):
        orch = _orchestrator(pipeline_config, settings, runner)
        orch.run()
        with pytest.raises(RuntimeError):
            orch.resign(make_app_bundle(tmp_path / "previous"))
