"""End-to-end release scenarios — CLI, orchestrator and every component together.

Only the external tools are scripted; bundle assembly, packaging, hashing
and cleanup run against the real filesystem.
"""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest
from typer.testing import CliRunner

import notaryforge.cli.commands.release as release_module
import notaryforge.cli.commands.resign as resign_module
from notaryforge.cli.app import app
from notaryforge.config import ReleaseSettings
from notaryforge.core.errors import PipelineAborted, SignError
from notaryforge.core.notary import NotarizationClient
from notaryforge.core.orchestrator import ReleaseOrchestrator
from notaryforge.core.toolchain import ToolUnavailableError
from notaryforge.models.config import PipelineConfig
from notaryforge.models.reports import TrustLevel
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

cli = CliRunner()

CREDENTIAL_ENV = {
    "APPLE_ID": "dev@example.com",
    "APPLE_PASSWORD": "abcd-efgh-ijkl-mnop",
    "TEAM_ID": "ABCDE12345",
    "NOTARYFORGE_POLL_INITIAL_INTERVAL": "0.01",
    "NOTARYFORGE_POLL_MAX_INTERVAL": "0.01",
}


@pytest.fixture
def fake_tools(monkeypatch: pytest.MonkeyPatch, runner: FakeToolRunner) -> FakeToolRunner:
    monkeypatch.setattr(release_module, "SubprocessToolRunner", lambda: runner)
    monkeypatch.setattr(resign_module, "SubprocessToolRunner", lambda: runner)
    return runner


@pytest.fixture
def with_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    for name, value in CREDENTIAL_ENV.items():
        monkeypatch.setenv(name, value)


def _release(artifact: Path, output: Path) -> list[str]:
    return [
        "release",
        "--artifact", str(artifact),
        "--app-name", "Example",
        "--version", "1.2.0",
        "--bundle-id", "com.example.app",
        "--output", str(output),
    ]


def _run(config: PipelineConfig, settings: ReleaseSettings, runner: FakeToolRunner):
    notary = NotarizationClient.from_settings(runner, settings, sleep=lambda seconds: None)
    return ReleaseOrchestrator(config, settings=settings, runner=runner, notary=notary).run()


# ---------------------------------------------------------------------------
# Scenarios through the CLI
# ---------------------------------------------------------------------------


class TestReleaseScenarios:
    def test_no_identity_is_unsigned(self, fake_tools, artifact_file, tmp_path):
        script_identity(fake_tools)
        output = tmp_path / "dist"
        result = cli.invoke(app, _release(artifact_file, output))
        assert result.exit_code == 0, result.output
        assert "unsigned" in result.output
        readme = output / "Example-1.2.0" / "README.txt"
        assert "LOCAL USE ONLY" in readme.read_text()

    def test_no_credentials_is_signed_only(self, fake_tools, artifact_file, tmp_path):
        script_identity(fake_tools, (DEV_ID_SHA, DEV_ID))
        result = cli.invoke(app, _release(artifact_file, tmp_path / "dist"))
        assert result.exit_code == 0, result.output
        assert "signed-only" in result.output
        assert fake_tools.calls_to("notarytool submit") == []

    def test_rejected_submission(self, fake_tools, with_credentials, artifact_file, tmp_path):
        script_identity(fake_tools, (DEV_ID_SHA, DEV_ID))
        script_rejected(fake_tools, "S1", log="ERROR: The signature does not include a secure timestamp.")
        output = tmp_path / "dist"
        result = cli.invoke(app, _release(artifact_file, output))
        assert result.exit_code != 0
        assert "S1" in result.output
        assert "secure timestamp" in result.output
        assert not (output / "Example-1.2.0").exists()
        assert not (output / "Example-1.2.0.zip").exists()
        assert not (output / "Example-notarize.zip").exists()

    def test_accepted_and_stapled(self, fake_tools, with_credentials, artifact_file, tmp_path):
        script_identity(fake_tools, (DEV_ID_SHA, DEV_ID))
        script_accepted(fake_tools)
        result = cli.invoke(app, _release(artifact_file, tmp_path / "dist"))
        assert result.exit_code == 0, result.output
        assert "notarized-offline-capable" in result.output
        assert fake_tools.keys().index("notarytool submit") < fake_tools.keys().index(
            "stapler staple"
        )

    def test_stapler_unavailable(self, fake_tools, with_credentials, artifact_file, tmp_path):
        script_identity(fake_tools, (DEV_ID_SHA, DEV_ID))
        script_accepted(fake_tools)
        fake_tools.on("stapler staple", ToolUnavailableError("xcrun is not installed"))
        result = cli.invoke(app, _release(artifact_file, tmp_path / "dist"))
        assert result.exit_code == 0, result.output
        assert "notarized-online-only" in result.output

    def test_resign_existing_bundle(self, fake_tools, with_credentials, tmp_path):
        script_identity(fake_tools, (DEV_ID_SHA, DEV_ID))
        script_accepted(fake_tools)
        source = make_app_bundle(tmp_path / "shipped")
        output = tmp_path / "dist"
        result = cli.invoke(app, ["resign", str(source), "--output", str(output)])
        assert result.exit_code == 0, result.output
        assert "notarized-offline-capable" in result.output

        keys = fake_tools.keys()
        assert "lipo" in keys
        assert keys.index("codesign --remove-signature") < keys.index("codesign --sign")
        assert keys.index("codesign --verify") < keys.index("notarytool submit")
        assert keys.index("notarytool submit") < keys.index("stapler staple")
        bundled = output / "Legacy-0.9" / "Legacy.app"
        assert fake_tools.calls_to("stapler staple")[0][-1] == str(bundled)
        with zipfile.ZipFile(output / "Legacy-0.9.zip") as zf:
            names = zf.namelist()
        assert "Legacy-0.9/README.txt" in names
        assert "Legacy-0.9/Legacy.app/Contents/Resources/data.txt" in names


# ---------------------------------------------------------------------------
# Pipeline properties
# ---------------------------------------------------------------------------


class TestPipelineProperties:
    def test_missing_credentials_never_notarizes(self, runner, pipeline_config, settings):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        report = _run(pipeline_config, settings, runner)
        assert report.state.notarized is False
        assert report.trust_level == TrustLevel.SIGNED_ONLY

    def test_sign_error_leaves_no_bundle(self, runner, pipeline_config, settings):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        # executable signs, container fails
        runner.on("codesign --sign", [ok(), fail("resource fork, Finder information, or similar detritus not allowed")])
        with pytest.raises(PipelineAborted) as info:
            _run(pipeline_config, settings, runner)
        assert isinstance(info.value.cause, SignError)
        assert not pipeline_config.bundle_path.exists()
        assert not pipeline_config.release_dir.exists()

        retry = FakeToolRunner()
        script_identity(retry, (DEV_ID_SHA, DEV_ID))
        report = _run(pipeline_config, settings, retry)
        assert report.trust_level == TrustLevel.SIGNED_ONLY
        assert pipeline_config.bundle_path.is_dir()

    def test_inner_signed_before_outer(self, runner, pipeline_config, settings):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        orch = ReleaseOrchestrator(pipeline_config, settings=settings, runner=runner)
        orch.run()
        inner, outer = orch.signatures
        assert inner.target == pipeline_config.bundle_path / "Contents" / "MacOS" / "Example"
        assert outer.target == pipeline_config.bundle_path
        assert inner.sequence_ns < outer.sequence_ns

    def test_rebuild_is_structurally_identical(self, runner, pipeline_config, settings):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        first = _run(pipeline_config, settings, runner)
        second = _run(pipeline_config, settings, runner)
        assert first.layout_digest == second.layout_digest

    def test_unsigned_and_signed_layouts_match(self, pipeline_config, settings):
        unsigned_tools = FakeToolRunner()
        script_identity(unsigned_tools)
        signed_tools = FakeToolRunner()
        script_identity(signed_tools, (DEV_ID_SHA, DEV_ID))
        unsigned = _run(pipeline_config, settings, unsigned_tools)
        signed = _run(pipeline_config, settings, signed_tools)
        assert unsigned.layout_digest == signed.layout_digest

    def test_rejection_error_references_log(self, runner, pipeline_config, notary_settings):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        script_rejected(runner, "S1", log="")
        with pytest.raises(PipelineAborted) as info:
            _run(pipeline_config, notary_settings, runner)
        message = str(info.value)
        assert "S1" in message
        assert "xcrun notarytool log S1" in message

    def test_verify_failure_never_submits(self, runner, pipeline_config, notary_settings):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        script_accepted(runner)
        runner.on("codesign --verify", fail("code has no resources but signature indicates they must be present"))
        with pytest.raises(PipelineAborted) as info:
            _run(pipeline_config, notary_settings, runner)
        assert info.value.stage == "verify"
        assert runner.calls_to("ditto") == []
        assert runner.calls_to("notarytool submit") == []

    def test_distributable_excludes_transient_archive(self, runner, pipeline_config, notary_settings):
        script_identity(runner, (DEV_ID_SHA, DEV_ID))
        script_accepted(runner)
        report = _run(pipeline_config, notary_settings, runner)
        with zipfile.ZipFile(report.archive_path) as zf:
            assert not any(name.endswith("-notarize.zip") for name in zf.namelist())
        assert not pipeline_config.notarization_archive.exists()
