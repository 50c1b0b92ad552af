"""Environment-driven settings for release runs.

Reads ``NOTARYFORGE_*`` environment variables and an optional ``.env`` file.
The notarization credentials are also accepted under the plain
``APPLE_ID`` / ``APPLE_PASSWORD`` / ``TEAM_ID`` names.

Examples
--------
Enable notarization::

    export APPLE_ID=dev@example.com
    export APPLE_PASSWORD=abcd-efgh-ijkl-mnop   # app-specific password
    export TEAM_ID=ABCDE12345

Pin the signing identity and slow down polling::

    export NOTARYFORGE_IDENTITY="Developer ID Application: Example Ltd (ABCDE12345)"
    export NOTARYFORGE_POLL_INITIAL_INTERVAL=30
"""

from __future__ import annotations

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from notaryforge.models.artifacts import NotaryCredentials


class ReleaseSettings(BaseSettings):
    """Process-level settings. Passed explicitly into the orchestrator."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="NOTARYFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    log_level: str = "INFO"

    # Name or SHA-1 hash of the identity to sign with; empty means
    # "first Developer ID Application identity in keychain order".
    identity: str = ""

    # Notarization credentials; all three or notarization is skipped
    apple_id: str = Field(
        default="",
        validation_alias=AliasChoices("NOTARYFORGE_APPLE_ID", "APPLE_ID", "apple_id"),
    )
    apple_password: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices(
            "NOTARYFORGE_APPLE_PASSWORD", "APPLE_PASSWORD", "apple_password"
        ),
    )
    team_id: str = Field(
        default="",
        validation_alias=AliasChoices("NOTARYFORGE_TEAM_ID", "TEAM_ID", "team_id"),
    )

    # Notarization polling policy (seconds)
    poll_initial_interval: float = 15.0
    poll_max_interval: float = 120.0
    notarization_timeout: float = 3600.0
    max_polls: int = 200
    submit_attempts: int = 3

    def credentials(self) -> NotaryCredentials | None:
        """Return the notarization credentials, or None if any is missing."""
        password = self.apple_password.get_secret_value()
        if not (self.apple_id and password and self.team_id):
            return None
        return NotaryCredentials(
            apple_id=self.apple_id,
            password=self.apple_password,
            team_id=self.team_id,
        )

    def missing_credentials(self) -> list[str]:
        """Names of the credential variables that are not set."""
        missing: list[str] = []
        if not self.apple_id:
            missing.append("APPLE_ID")
        if not self.apple_password.get_secret_value():
            missing.append("APPLE_PASSWORD")
        if not self.team_id:
            missing.append("TEAM_ID")
        return missing
