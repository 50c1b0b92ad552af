"""Pipeline and run configuration models."""

from __future__ import annotations

import re
import tomllib
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_REVERSE_DNS = re.compile(r"^[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)+$")
_USAGE_KEY = re.compile(r"^NS[A-Za-z]+UsageDescription$")


class PipelineConfig(BaseModel):
    """Layout and packaging settings for one application release.

    Loaded from ``notaryforge.toml`` or ``pyproject.toml [tool.notaryforge]``.
    """

    model_config = ConfigDict(frozen=True)

    app_name: str
    version: str
    artifact_path: Path
    bundle_identifier: str
    executable_name: str | None = None  # defaults to app_name
    display_name: str | None = None  # defaults to app_name
    minimum_system_version: str = "14.0"
    category: str = "public.app-category.developer-tools"
    usage_descriptions: dict[str, str] = {}
    icon_path: Path | None = None
    entitlements_path: Path | None = None
    strip_symbols: bool = False
    output_dir: Path = Path("dist")
    support_contact: str = ""

    @field_validator("app_name", "version")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        if "/" in value:
            raise ValueError("must not contain '/'")
        return value

    @field_validator("bundle_identifier")
    @classmethod
    def _reverse_dns(cls, value: str) -> str:
        if not _REVERSE_DNS.match(value):
            raise ValueError(f"not a reverse-DNS identifier: {value!r}")
        return value

    @field_validator("usage_descriptions")
    @classmethod
    def _usage_keys(cls, value: dict[str, str]) -> dict[str, str]:
        for key in value:
            if not _USAGE_KEY.match(key):
                raise ValueError(f"not a usage-description key: {key!r}")
        return value

    # ------------------------------------------------------------------
    # Derived names and paths
    # ------------------------------------------------------------------

    @property
    def resolved_executable_name(self) -> str:
        return self.executable_name or self.app_name

    @property
    def resolved_display_name(self) -> str:
        return self.display_name or self.app_name

    @property
    def release_name(self) -> str:
        return f"{self.app_name}-{self.version}"

    @property
    def release_dir(self) -> Path:
        return self.output_dir / self.release_name

    @property
    def bundle_path(self) -> Path:
        return self.release_dir / f"{self.app_name}.app"

    @property
    def notarization_archive(self) -> Path:
        # Outside release_dir so it can never end up in the distributable
        return self.output_dir / f"{self.app_name}-notarize.zip"

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_toml(
        cls, path: Path, overrides: dict[str, Any] | None = None
    ) -> PipelineConfig:
        """Load from a TOML file.

        ``pyproject.toml`` is read from its ``[tool.notaryforge]`` table; any
        other file from its top level. Relative paths are resolved against
        the file's directory. ``overrides`` (e.g. CLI options) win.
        """
        path = Path(path)
        with path.open("rb") as fh:
            data = tomllib.load(fh)
        if path.name == "pyproject.toml":
            data = data.get("tool", {}).get("notaryforge", {})

        base = path.parent
        for key in ("artifact_path", "icon_path", "entitlements_path", "output_dir"):
            if key in data and not Path(data[key]).is_absolute():
                data[key] = str(base / data[key])

        data.update({k: v for k, v in (overrides or {}).items() if v is not None})
        return cls.model_validate(data)


class RunConfig(BaseModel):
    """Per-run configuration, created when a release run starts."""

    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=lambda: f"nf-{uuid.uuid4().hex[:12]}")
    pipeline_config: PipelineConfig
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
