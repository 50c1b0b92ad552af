"""Final packaging — usage notes plus a zip of the release directory.

Layout::

    <output>/<app>-<version>/<app>.app
    <output>/<app>-<version>/README.txt
    <output>/<app>-<version>.zip
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from notaryforge.core.errors import PackagingError
from notaryforge.core.hasher import file_sha256
from notaryforge.models.artifacts import Bundle, Distribution
from notaryforge.models.config import PipelineConfig
from notaryforge.models.reports import TrustLevel

logger = logging.getLogger(__name__)

README_NAME = "README.txt"


def render_readme(config: PipelineConfig, trust_level: TrustLevel) -> str:
    """Installation notes for end users. Wording depends on the trust level."""
    app = f"{config.app_name}.app"
    lines = [
        f"{config.app_name} v{config.version}",
        "=" * 32,
        "",
        "Installation:",
        f"1. Copy {app} to the /Applications folder",
        "2. Double-click to run",
        "",
    ]
    if trust_level == TrustLevel.NOTARIZED_OFFLINE_CAPABLE:
        lines += ["This app is signed and notarized by Apple and opens without warnings."]
    elif trust_level == TrustLevel.NOTARIZED_ONLINE_ONLY:
        lines += [
            "This app is signed and notarized by Apple.",
            "The first launch needs an internet connection so macOS can confirm",
            "the notarization.",
        ]
    elif trust_level == TrustLevel.SIGNED_ONLY:
        lines += [
            "This app is signed but not notarized. On first launch, right-click",
            "the app and choose Open, or allow it under",
            "System Settings > Privacy & Security.",
        ]
    else:
        lines += [
            "LOCAL USE ONLY: this app is not code signed. macOS will report it as",
            "damaged when it was downloaded or copied from another Mac. To run it",
            "anyway, remove the quarantine attribute in Terminal:",
            f'  xattr -cr "/Applications/{app}"',
        ]
    if config.usage_descriptions:
        lines += ["", "macOS permissions requested:"]
        lines += [f"- {text}" for _, text in sorted(config.usage_descriptions.items())]
    if config.support_contact:
        lines += ["", f"Support: {config.support_contact}"]
    lines += ["=" * 32, ""]
    return "\n".join(lines)


class Packager:
    def package(
        self, bundle: Bundle, config: PipelineConfig, trust_level: TrustLevel
    ) -> Distribution:
        """Write usage notes and zip the release directory.

        Raises ``PackagingError`` on any filesystem failure.
        """
        release_dir = config.release_dir
        readme = release_dir / README_NAME
        base_name = config.output_dir / config.release_name
        archive = Path(f"{base_name}.zip")

        if not bundle.path.is_dir():
            raise PackagingError(f"Bundle missing at packaging time: {bundle.path}")
        try:
            readme.write_text(render_readme(config, trust_level), encoding="utf-8")
            archive.unlink(missing_ok=True)
            created = shutil.make_archive(
                str(base_name),
                "zip",
                root_dir=config.output_dir,
                base_dir=config.release_name,
            )
            digest = file_sha256(Path(created))
        except OSError as exc:
            raise PackagingError(f"Cannot package {release_dir}", str(exc)) from exc

        logger.info("Packaged %s (sha256 %s)", created, digest[:12])
        return Distribution(
            release_dir=release_dir,
            archive_path=Path(created),
            archive_sha256=digest,
            readme_path=readme,
        )
