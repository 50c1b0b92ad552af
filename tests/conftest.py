"""Shared test fixtures for Notaryforge."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

import pytest

from notaryforge.config import ReleaseSettings
from notaryforge.models.config import PipelineConfig
from toolfakes import FakeToolRunner


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep host credentials, overrides and ``.env`` files out of every test."""
    for name in list(os.environ):
        if name.startswith("NOTARYFORGE_") or name in ("APPLE_ID", "APPLE_PASSWORD", "TEAM_ID"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    package_logger = logging.getLogger("notaryforge")
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def runner() -> FakeToolRunner:
    return FakeToolRunner()


@pytest.fixture
def artifact_file(tmp_path: Path) -> Path:
    """A non-empty stand-in for a compiled executable."""
    path = tmp_path / "build" / "example-cli"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"\xcf\xfa\xed\xfe" + b"\x00" * 60)
    return path


@pytest.fixture
def pipeline_config(tmp_path: Path, artifact_file: Path) -> PipelineConfig:
    return PipelineConfig(
        app_name="Example",
        version="1.2.0",
        artifact_path=artifact_file,
        bundle_identifier="com.example.app",
        usage_descriptions={
            "NSMicrophoneUsageDescription": "Example records voice notes.",
        },
        output_dir=tmp_path / "dist",
        support_contact="support@example.com",
    )


@pytest.fixture
def settings() -> ReleaseSettings:
    """Settings without notarization credentials."""
    return ReleaseSettings(_env_file=None)


@pytest.fixture
def notary_settings() -> ReleaseSettings:
    """Settings with a full set of notarization credentials and fast polling."""
    return ReleaseSettings(
        _env_file=None,
        apple_id="dev@example.com",
        apple_password="abcd-efgh-ijkl-mnop",
        team_id="ABCDE12345",
        poll_initial_interval=0.01,
        poll_max_interval=0.01,
        max_polls=10,
    )


@pytest.fixture
def no_sleep() -> Callable[[float], None]:
    def _sleep(seconds: float) -> None:
        return None

    return _sleep
