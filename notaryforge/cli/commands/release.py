"""``notaryforge release`` — run the whole release pipeline.

Loads the release layout from a TOML file and/or command-line options,
takes credentials and the identity override from the environment, then
assembles, signs, verifies, notarizes, staples and packages the app.

Exit codes: 0 packaged (at any trust level), 1 aborted, 2 bad configuration.
"""

from __future__ import annotations

import shutil
import tomllib
from collections.abc import Callable
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from notaryforge.cli.logs import configure_logging
from notaryforge.config import ReleaseSettings
from notaryforge.core.errors import PipelineAborted
from notaryforge.core.orchestrator import ReleaseOrchestrator
from notaryforge.core.toolchain import SubprocessToolRunner
from notaryforge.models.config import PipelineConfig
from notaryforge.models.reports import ReleaseReport
from notaryforge.monitor.renderer import ReportRenderer

console = Console()

_DEFAULT_CONFIG = Path("notaryforge.toml")

EXIT_ABORTED = 1
EXIT_BAD_CONFIG = 2


def config_source(config_file: Path | None) -> Path | None:
    """The TOML file a command reads, falling back to ./notaryforge.toml."""
    if config_file is None and _DEFAULT_CONFIG.is_file():
        return _DEFAULT_CONFIG
    return config_file


def load_config(config_file: Path | None, overrides: dict[str, Any]) -> PipelineConfig:
    config_file = config_source(config_file)
    if config_file is not None:
        return PipelineConfig.from_toml(config_file, overrides)
    return PipelineConfig.model_validate(
        {k: v for k, v in overrides.items() if v is not None}
    )


def load_settings(identity: str | None, log_level: str | None) -> ReleaseSettings:
    """Environment settings with the CLI identity override applied; configures logging."""
    settings = ReleaseSettings()
    if identity:
        settings = settings.model_copy(update={"identity": identity})
    configure_logging(log_level or settings.log_level)
    return settings


def bad_config(exc: Exception) -> typer.Exit:
    if isinstance(exc, ValidationError):
        console.print(f"[bold red]Invalid configuration:[/bold red]\n{escape(str(exc))}")
    else:
        console.print(f"[bold red]Invalid configuration:[/bold red] {escape(str(exc))}")
    return typer.Exit(code=EXIT_BAD_CONFIG)


def _clean_refusal(config: PipelineConfig, config_file: Path | None) -> str | None:
    """Why ``--clean`` must not remove the output directory, if it must not."""
    target = config.output_dir.resolve()
    cwd = Path.cwd().resolve()
    if target == cwd or target in cwd.parents:
        return "it is the working directory or one of its parents"
    inputs = (
        config.artifact_path,
        config.icon_path,
        config.entitlements_path,
        config_file,
    )
    for path in inputs:
        if path is not None and path.resolve().is_relative_to(target):
            return f"it contains the input {path}"
    return None


def run_release(orchestrator: ReleaseOrchestrator, run: Callable[[], ReleaseReport]) -> None:
    """Run ``run`` and print its report, or the abort and exit 1."""
    renderer = ReportRenderer(console=console)
    config = orchestrator.config
    console.print(
        f"[bold cyan]Releasing {escape(config.app_name)} {escape(config.version)}[/bold cyan] "
        f"[dim](run {orchestrator.run_id})[/dim]"
    )
    try:
        report = run()
    except PipelineAborted as exc:
        renderer.print_abort(exc)
        raise typer.Exit(code=EXIT_ABORTED)

    console.print()
    renderer.print_report(report)


def release_cmd(
    config_file: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML file with the release layout (notaryforge.toml or pyproject.toml).",
    ),
    artifact: Path = typer.Option(None, "--artifact", "-a", help="Built executable to release."),
    app_name: str = typer.Option(None, "--app-name", help="Application name."),
    version: str = typer.Option(None, "--version", "-v", help="Release version."),
    bundle_id: str = typer.Option(None, "--bundle-id", help="Reverse-DNS bundle identifier."),
    output: Path = typer.Option(None, "--output", "-o", help="Output directory."),
    identity: str = typer.Option(
        None, "--identity", help="Signing identity name or SHA-1 (overrides NOTARYFORGE_IDENTITY)."
    ),
    entitlements: Path = typer.Option(None, "--entitlements", help="Entitlements plist."),
    icon: Path = typer.Option(None, "--icon", help="Application icon (.icns)."),
    strip: bool = typer.Option(False, "--strip", help="Strip debug symbols from the executable."),
    clean: bool = typer.Option(
        False, "--clean", help="Remove the output directory first (refused if it holds an input)."
    ),
    log_level: str = typer.Option(None, "--log-level", "-l", help="Log level (default INFO)."),
) -> None:
    """Release one application: bundle, sign, notarize, staple, package.

    Signing is skipped when no Developer ID identity is installed, and
    notarization when APPLE_ID, APPLE_PASSWORD or TEAM_ID is unset. The
    run still succeeds at a lower trust level in both cases.
    """
    overrides: dict[str, Any] = {
        "artifact_path": artifact,
        "app_name": app_name,
        "version": version,
        "bundle_identifier": bundle_id,
        "output_dir": output,
        "entitlements_path": entitlements,
        "icon_path": icon,
        "strip_symbols": True if strip else None,
    }
    try:
        config = load_config(config_file, overrides)
        settings = load_settings(identity, log_level)
    except (ValidationError, OSError, tomllib.TOMLDecodeError, ValueError) as exc:
        raise bad_config(exc)

    if clean and config.output_dir.exists():
        refusal = _clean_refusal(config, config_source(config_file))
        if refusal is not None:
            console.print(
                f"[bold red]Refusing to clean {escape(str(config.output_dir))}:[/bold red] "
                f"{escape(refusal)}"
            )
            raise typer.Exit(code=EXIT_BAD_CONFIG)
        console.print(f"[dim]Removing {escape(str(config.output_dir))}[/dim]")
        shutil.rmtree(config.output_dir)

    orchestrator = ReleaseOrchestrator(
        config, settings=settings, runner=SubprocessToolRunner()
    )
    run_release(orchestrator, orchestrator.run)
