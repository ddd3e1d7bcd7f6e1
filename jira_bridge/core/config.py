"""
Application configuration models and helpers.

Centralizes settings for the Jira OAuth integration so the FastAPI app and the
environment check script share one configuration surface.
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_JIRA_SCOPES: tuple[str, ...] = (
    "read:jira-work",
    "write:jira-work",
    "manage:jira-project",
)


class ConfigurationError(Exception):
    """Raised when the integration cannot run with the supplied configuration."""


def load_env_file(path: str) -> None:
    """Best-effort load key=value pairs from an arbitrary env file into the environment.

    Used by the env check script; the app itself relies on pydantic-settings
    reading ``.env`` from the working directory.
    """
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        os.environ[key] = value.strip().strip('"').strip("'")


_SETTINGS_CONFIG = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
)


class AtlassianSettings(BaseSettings):
    """OAuth client registration for the Atlassian developer console app."""

    model_config = _SETTINGS_CONFIG

    client_id: Optional[str] = Field(None, validation_alias="ATLASSIAN_CLIENT_ID")
    client_secret: Optional[str] = Field(
        None, validation_alias="ATLASSIAN_CLIENT_SECRET"
    )
    redirect_uri: AnyHttpUrl = Field(
        "http://localhost:5000/api/jira/oauth/callback",
        validation_alias="OAUTH_REDIRECT_URI",
    )
    authorization_url: str = Field(
        "https://auth.atlassian.com/authorize",
        validation_alias="ATLASSIAN_AUTHORIZATION_URL",
    )
    token_url: str = Field(
        "https://auth.atlassian.com/oauth/token",
        validation_alias="ATLASSIAN_TOKEN_URL",
    )
    audience: str = Field("api.atlassian.com", validation_alias="ATLASSIAN_AUDIENCE")
    api_base_url: str = Field(
        "https://api.atlassian.com",
        validation_alias="ATLASSIAN_API_BASE_URL",
        description="Gateway used for accessible-resources and Jira REST calls.",
    )


class SecuritySettings(BaseSettings):
    """Secrets and session cookie options."""

    model_config = _SETTINGS_CONFIG

    credential_encryption_key: Optional[str] = Field(
        None,
        validation_alias="CREDENTIAL_ENCRYPTION_KEY",
        description="Secret the credential vault derives its AES key from.",
    )
    session_secret: Optional[str] = Field(
        None,
        validation_alias="SESSION_SECRET",
        description="General session secret, used for the vault only as a fallback.",
    )
    encryption_salt: str = Field(
        "jira-bridge.credential-vault",
        validation_alias="CREDENTIAL_ENCRYPTION_SALT",
    )
    session_cookie_name: str = Field(
        "jira_bridge_session", validation_alias="SESSION_COOKIE_NAME"
    )
    session_cookie_secure: bool = Field(False, validation_alias="SESSION_COOKIE_SECURE")
    session_max_age_seconds: int = Field(86400, validation_alias="SESSION_MAX_AGE")
    session_db_path: Optional[str] = Field(
        None,
        validation_alias="SESSION_DB_PATH",
        description="SQLite file for session records; in-memory when omitted.",
    )


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = _SETTINGS_CONFIG

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    http_timeout_seconds: float = Field(10.0, validation_alias="OAUTH_HTTP_TIMEOUT")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        DEFAULT_JIRA_SCOPES, validation_alias="OAUTH_SCOPES"
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma or space separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope for scope in re.split(r"[,\s]+", value) if scope)


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = _SETTINGS_CONFIG

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias=AliasChoices("FRONTEND_BASE_URL", "CORS_ORIGIN"),
        description="Front-end origin for CORS and post-connect redirects.",
    )
    atlassian: AtlassianSettings = Field(default_factory=AtlassianSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "AtlassianSettings",
    "ConfigurationError",
    "DEFAULT_JIRA_SCOPES",
    "OAuthSettings",
    "SecuritySettings",
    "get_settings",
    "load_env_file",
]
