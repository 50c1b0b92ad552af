"""Bundle assembly — raw executable to ``.app`` directory.

Assembly is destructive: the release directory of a previous run is removed
wholesale before the new bundle is written, so no file from an earlier run
can leak into this one. This also means two releases must not target the
same output directory at the same time; there is no locking.
"""

from __future__ import annotations

import logging
import plistlib
import shutil
import tempfile
from pathlib import Path
from typing import Any
from xml.parsers.expat import ExpatError

from notaryforge.core.errors import LayoutError
from notaryforge.core.toolchain import ToolRunner, ToolUnavailableError
from notaryforge.models.artifacts import Artifact, Bundle
from notaryforge.models.config import PipelineConfig

logger = logging.getLogger(__name__)

INFO_DICTIONARY_VERSION = "6.0"

# Dropped from Info.plist when an existing bundle is re-signed
LEGACY_INFO_KEYS = frozenset({"LSRequiresCarbon", "CSResourcesFileMapped"})


def build_info_plist(config: PipelineConfig) -> dict[str, Any]:
    """The metadata descriptor, in a fixed key order."""
    info: dict[str, Any] = {
        "CFBundleDisplayName": config.resolved_display_name,
        "CFBundleName": config.app_name,
        "CFBundleExecutable": config.resolved_executable_name,
        "CFBundleIdentifier": config.bundle_identifier,
        "CFBundleInfoDictionaryVersion": INFO_DICTIONARY_VERSION,
        "CFBundlePackageType": "APPL",
        "CFBundleShortVersionString": config.version,
        "CFBundleVersion": config.version,
        "LSMinimumSystemVersion": config.minimum_system_version,
    }
    for key in sorted(config.usage_descriptions):
        info[key] = config.usage_descriptions[key]
    info["LSApplicationCategoryType"] = config.category
    if config.icon_path is not None:
        info["CFBundleIconFile"] = f"{config.app_name}.icns"
    info["NSHighResolutionCapable"] = True
    return info


def read_bundle_info(bundle_path: Path) -> dict[str, Any]:
    """Load the Info.plist of an existing bundle.

    Raises ``LayoutError`` unless the bundle has an Info.plist naming an
    executable that is present under ``Contents/MacOS``.
    """
    bundle_path = Path(bundle_path)
    info_path = bundle_path / "Contents" / "Info.plist"
    if not bundle_path.is_dir() or not info_path.is_file():
        raise LayoutError(f"Not an application bundle: {bundle_path}")
    try:
        with info_path.open("rb") as fh:
            info = plistlib.load(fh)
    except (OSError, ValueError, ExpatError) as exc:
        raise LayoutError(f"Cannot read {info_path}", str(exc)) from exc
    executable = info.get("CFBundleExecutable")
    if not executable or not (bundle_path / "Contents" / "MacOS" / executable).is_file():
        raise LayoutError(f"Bundle executable missing: {bundle_path}")
    return info


class BundleAssembler:
    """Builds the bundle for one release from one artifact."""

    def __init__(self, runner: ToolRunner) -> None:
        self._runner = runner

    def inspect(self, artifact_path: Path) -> Artifact:
        """Validate the raw artifact and probe its architecture slices."""
        path = Path(artifact_path)
        if not path.is_file():
            raise LayoutError(f"Artifact not found: {path}")
        if path.stat().st_size == 0:
            raise LayoutError(f"Artifact is empty: {path}")
        return Artifact(path=path, architectures=self._probe_architectures(path))

    def _probe_architectures(self, path: Path) -> tuple[str, ...]:
        try:
            result = self._runner.run(["lipo", "-archs", path])
        except ToolUnavailableError:
            logger.debug("lipo unavailable; architecture set unknown")
            return ()
        if not result.ok:
            logger.debug("lipo -archs failed: %s", result.diagnostic)
            return ()
        return tuple(result.stdout.split())

    def assemble(self, artifact: Artifact, config: PipelineConfig) -> Bundle:
        """Create ``<release_dir>/<app>.app`` from ``artifact``.

        Raises ``LayoutError`` if the artifact or a declared resource is
        missing, or if the bundle cannot be written.
        """
        self._check_inputs(artifact, config)

        bundle = Bundle(
            path=config.bundle_path,
            executable_name=config.resolved_executable_name,
            bundle_identifier=config.bundle_identifier,
        )
        info = build_info_plist(config)
        try:
            self._clear_release_dir(config.release_dir)
            bundle.executable.parent.mkdir(parents=True)
            bundle.resources.mkdir(parents=True)
            shutil.copy2(artifact.path, bundle.executable)
            bundle.executable.chmod(0o755)
            with bundle.info_plist.open("wb") as fh:
                plistlib.dump(info, fh, fmt=plistlib.FMT_XML, sort_keys=False)
            if config.icon_path is not None:
                shutil.copy2(config.icon_path, bundle.resources / info["CFBundleIconFile"])
        except OSError as exc:
            raise LayoutError(f"Cannot write bundle at {bundle.path}", str(exc)) from exc

        if config.strip_symbols:
            self._strip(bundle.executable)

        logger.info(
            "Assembled %s (executable %s, %s)",
            bundle.path,
            bundle.executable_name,
            "/".join(artifact.architectures) or "unknown arch",
        )
        return bundle.model_copy(update={"metadata_keys": tuple(info)})

    def adopt(self, source: Path, config: PipelineConfig) -> Bundle:
        """Copy an existing ``.app`` into the release directory for re-signing.

        The executable is kept as is. Managed Info.plist keys are rewritten
        from ``config`` and legacy compatibility flags dropped; every other
        key keeps its value and position. ``source`` itself is not modified.
        """
        source = Path(source)
        source_info = read_bundle_info(source)
        executable_name = source_info["CFBundleExecutable"]
        if config.icon_path is not None and not config.icon_path.is_file():
            raise LayoutError(f"Icon file not found: {config.icon_path}")
        if config.entitlements_path is not None and not config.entitlements_path.is_file():
            raise LayoutError(f"Entitlements file not found: {config.entitlements_path}")

        bundle = Bundle(
            path=config.bundle_path,
            executable_name=executable_name,
            bundle_identifier=config.bundle_identifier,
        )
        info = {k: v for k, v in source_info.items() if k not in LEGACY_INFO_KEYS}
        managed = build_info_plist(config)
        managed["CFBundleExecutable"] = executable_name
        info.update(managed)
        try:
            with tempfile.TemporaryDirectory(prefix="notaryforge-") as staging:
                # source may live inside the release directory being replaced
                staged = Path(staging) / source.name
                shutil.copytree(source, staged, symlinks=True)
                self._clear_release_dir(config.release_dir)
                config.release_dir.mkdir(parents=True)
                shutil.copytree(staged, bundle.path, symlinks=True)
            with bundle.info_plist.open("wb") as fh:
                plistlib.dump(info, fh, fmt=plistlib.FMT_XML, sort_keys=False)
            if config.icon_path is not None:
                bundle.resources.mkdir(parents=True, exist_ok=True)
                shutil.copy2(config.icon_path, bundle.resources / info["CFBundleIconFile"])
        except OSError as exc:
            raise LayoutError(f"Cannot copy bundle {source} to {bundle.path}", str(exc)) from exc

        logger.info("Adopted %s as %s for re-signing", source, bundle.path)
        return bundle.model_copy(update={"metadata_keys": tuple(info)})

    @staticmethod
    def _clear_release_dir(release_dir: Path) -> None:
        if release_dir.is_dir() and not release_dir.is_symlink():
            logger.info("Removing previous release directory %s", release_dir)
            shutil.rmtree(release_dir)
        elif release_dir.exists() or release_dir.is_symlink():
            logger.info("Removing stale file at release path %s", release_dir)
            release_dir.unlink()

    def _check_inputs(self, artifact: Artifact, config: PipelineConfig) -> None:
        if not artifact.path.is_file() or artifact.path.stat().st_size == 0:
            raise LayoutError(f"Artifact missing or empty: {artifact.path}")
        if config.icon_path is not None and not config.icon_path.is_file():
            raise LayoutError(f"Icon file not found: {config.icon_path}")
        if config.entitlements_path is not None and not config.entitlements_path.is_file():
            raise LayoutError(f"Entitlements file not found: {config.entitlements_path}")

    def _strip(self, executable: Path) -> None:
        try:
            result = self._runner.run(["strip", executable])
        except ToolUnavailableError as exc:
            raise LayoutError("Cannot strip debug symbols", str(exc)) from exc
        if not result.ok:
            raise LayoutError("strip failed", result.diagnostic)
