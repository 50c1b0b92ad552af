"""``notaryforge resign`` — re-sign and re-notarize an existing ``.app``.

The bundle is not rebuilt. It is copied into the release directory, its
managed Info.plist keys are refreshed, and the run continues with signing,
verification, notarization, stapling and packaging exactly as ``release``
does. Name, version and bundle identifier default to the bundle's own
Info.plist when no config file is in use.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.markup import escape

from notaryforge.cli.commands.release import (
    EXIT_BAD_CONFIG,
    config_source,
    bad_config,
    console,
    load_config,
    load_settings,
    run_release,
)
from notaryforge.core.bundle import read_bundle_info
from notaryforge.core.errors import LayoutError
from notaryforge.core.orchestrator import ReleaseOrchestrator
from notaryforge.core.toolchain import SubprocessToolRunner


def resign_cmd(
    bundle: Path = typer.Argument(..., help="Existing .app bundle to re-sign."),
    config_file: Path = typer.Option(
        None, "--config", "-c", help="TOML file with the release layout."
    ),
    app_name: str = typer.Option(None, "--app-name", help="Application name."),
    version: str = typer.Option(None, "--version", "-v", help="Release version."),
    bundle_id: str = typer.Option(None, "--bundle-id", help="Reverse-DNS bundle identifier."),
    output: Path = typer.Option(None, "--output", "-o", help="Output directory."),
    identity: str = typer.Option(
        None, "--identity", help="Signing identity name or SHA-1 (overrides NOTARYFORGE_IDENTITY)."
    ),
    entitlements: Path = typer.Option(None, "--entitlements", help="Entitlements plist."),
    icon: Path = typer.Option(None, "--icon", help="Application icon (.icns)."),
    log_level: str = typer.Option(None, "--log-level", "-l", help="Log level (default INFO)."),
) -> None:
    """Re-sign, notarize, staple and package an already built bundle."""
    try:
        info = read_bundle_info(bundle)
    except LayoutError as exc:
        console.print(f"[bold red]Invalid bundle:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_BAD_CONFIG)

    executable = info["CFBundleExecutable"]
    overrides: dict[str, Any] = {
        "app_name": app_name,
        "version": version,
        "bundle_identifier": bundle_id,
        "output_dir": output,
        "entitlements_path": entitlements,
        "icon_path": icon,
    }
    if config_source(config_file) is None:
        from_bundle = {
            "app_name": info.get("CFBundleName"),
            "version": info.get("CFBundleShortVersionString"),
            "bundle_identifier": info.get("CFBundleIdentifier"),
        }
        for key, value in from_bundle.items():
            if overrides[key] is None:
                overrides[key] = value
    overrides["artifact_path"] = bundle / "Contents" / "MacOS" / executable
    overrides["executable_name"] = executable

    try:
        config = load_config(config_file, overrides)
        settings = load_settings(identity, log_level)
    except (ValidationError, OSError, tomllib.TOMLDecodeError, ValueError) as exc:
        raise bad_config(exc)

    orchestrator = ReleaseOrchestrator(
        config, settings=settings, runner=SubprocessToolRunner()
    )
    run_release(orchestrator, lambda: orchestrator.resign(bundle))
