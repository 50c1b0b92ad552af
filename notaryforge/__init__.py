"""Notaryforge: release pipeline for macOS application bundles.

Takes a compiled executable through bundling, signing-identity discovery,
hardened-runtime signing, local signature verification, notarization
submission and polling, ticket stapling, and final packaging.

Every run ends in exactly one trust level:
  - unsigned
  - signed-only
  - notarized-online-only
  - notarized-offline-capable
"""

__version__ = "0.1.0"
__description__ = "Bundle, sign, notarize, staple and package macOS apps"

from notaryforge.core.orchestrator import ReleaseOrchestrator
from notaryforge.models.reports import ReleaseReport, TrustLevel

__all__ = ["ReleaseOrchestrator", "ReleaseReport", "TrustLevel", "__version__"]
