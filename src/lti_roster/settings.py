"""
Central configuration for the LTI roster tool.

Application settings are read from environment variables with the
``LTI_ROSTER_`` prefix (e.g. ``LTI_ROSTER_DATASTORE=sql``). Seed data for the
registration store comes from three further groups:

    REG_ISSUER, REG_CLIENT_ID, REG_AUTH_TOKEN_URI, REG_AUTH_LOGIN_URI,
    REG_KEYSET_URI, REG_TARGET_LINK_URI
    DEP_DEPLOYMENT_ID
    KEY_PRIVATE

Usage::

    from lti_roster.settings import get_settings
    settings = get_settings()
    print(settings.datastore, settings.database_url)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lti_roster.datastore.models import Deployment, Registration
from lti_roster.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from ``LTI_ROSTER_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LTI_ROSTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────────
    env: Literal["local", "dev", "prod"] = "local"

    # ── Registration store ───────────────────────────────────────────
    datastore: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite:///test.db"

    # ── Launch data ──────────────────────────────────────────────────
    # Empty string = launch data kept in process memory.
    redis_url: str = ""

    # ── HTTP ─────────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8080
    csp_frame_ancestors: str = "*"

    # ── Platform services ────────────────────────────────────────────
    key_id: str = "defaultKey"
    http_timeout: float = 10.0

    # ── Debug ────────────────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _validate_config(self) -> Settings:
        """
        Fail fast on misconfiguration.

        All errors are collected before raising so one startup failure
        reports every problem.
        """
        errors: list[str] = []

        if self.env != "local":
            if not self.redis_url:
                errors.append(
                    "LTI_ROSTER_REDIS_URL is required in deployed environments "
                    "(launch data would not survive a worker restart)"
                )

        if self.env == "prod":
            if self.datastore != "sql":
                errors.append("LTI_ROSTER_DATASTORE must be 'sql' in prod")
            if self.debug:
                errors.append("LTI_ROSTER_DEBUG must be false in prod")

        if self.http_timeout <= 0:
            errors.append("LTI_ROSTER_HTTP_TIMEOUT must be positive")

        if errors:
            raise ValueError(
                f"[lti-roster env={self.env!r}] Configuration errors:\n  - "
                + "\n  - ".join(errors)
            )

        return self


class RegistrationSettings(BaseSettings):
    """Seed registration from ``REG_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="REG_", env_file=".env", extra="ignore")

    issuer: str
    client_id: str
    auth_token_uri: str
    auth_login_uri: str
    keyset_uri: str
    target_link_uri: str


class DeploymentSettings(BaseSettings):
    """Seed deployment from ``DEP_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="DEP_", env_file=".env", extra="ignore")

    deployment_id: str


class KeySettings(BaseSettings):
    """Tool signing key from ``KEY_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="KEY_", env_file=".env", extra="ignore")

    # A PEM string, or a path to a PEM file.
    private: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (for testing)."""
    get_settings.cache_clear()


def load_registration() -> Registration:
    """Load the seed registration, raising ConfigurationError if invalid."""
    try:
        return Registration(**RegistrationSettings().model_dump())
    except ValidationError as e:
        raise ConfigurationError(f"registration environment parse error: {e}") from e


def load_deployment(issuer: str) -> Deployment:
    """Load the seed deployment for *issuer*."""
    try:
        settings = DeploymentSettings()
        return Deployment(issuer=issuer, deployment_id=settings.deployment_id)
    except ValidationError as e:
        raise ConfigurationError(f"deployment environment parse error: {e}") from e


def load_private_key() -> str:
    """Load the signing key PEM from ``KEY_PRIVATE``.

    Values starting with ``-----BEGIN`` are inline PEM; anything else is read
    as a file path.
    """
    try:
        value = KeySettings().private
    except ValidationError as e:
        raise ConfigurationError(f"key environment parse error: {e}") from e

    if value.startswith("-----BEGIN"):
        return value

    try:
        return Path(value).read_text()
    except OSError as e:
        raise ConfigurationError(f"cannot read private key file {value!r}: {e}") from e
