"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

import logging
from functools import lru_cache

from jira_bridge.clients import (
    AtlassianOAuthClient,
    InMemorySessionStore,
    JiraAPIClient,
    SessionStore,
    SQLiteSessionStore,
)
from jira_bridge.core.config import get_settings
from jira_bridge.services import CredentialVault, JiraTokenService

logger = logging.getLogger(__name__)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_session_store() -> SessionStore:
    """Provide the session store, SQLite-backed when a path is configured."""
    security = _settings().security
    max_age = security.session_max_age_seconds
    if security.session_db_path:
        return SQLiteSessionStore(security.session_db_path, max_age_seconds=max_age)
    return InMemorySessionStore(max_age_seconds=max_age)


@lru_cache()
def get_credential_vault() -> CredentialVault:
    """Provide the vault that encrypts tokens held in session records."""
    security = _settings().security
    secret = security.credential_encryption_key
    if not secret and security.session_secret:
        logger.warning(
            "CREDENTIAL_ENCRYPTION_KEY is not set; deriving the credential vault "
            "key from SESSION_SECRET. Configure a dedicated key in production."
        )
        secret = security.session_secret
    return CredentialVault(secret=secret or "", salt=security.encryption_salt)


@lru_cache()
def get_atlassian_oauth_client() -> AtlassianOAuthClient:
    """Create a singleton Atlassian OAuth client."""
    settings = _settings()
    return AtlassianOAuthClient(settings.atlassian, settings.oauth)


@lru_cache()
def get_jira_token_service() -> JiraTokenService:
    """Provide the Jira OAuth token lifecycle service."""
    settings = _settings()
    return JiraTokenService(
        session_store=get_session_store(),
        oauth_client=get_atlassian_oauth_client(),
        token_vault=get_credential_vault(),
        oauth_settings=settings.oauth,
    )


@lru_cache()
def get_jira_api_client() -> JiraAPIClient:
    """Provide the Jira REST client."""
    settings = _settings()
    return JiraAPIClient(
        settings.atlassian, timeout=settings.oauth.http_timeout_seconds
    )


__all__ = [
    "get_atlassian_oauth_client",
    "get_credential_vault",
    "get_jira_api_client",
    "get_jira_token_service",
    "get_session_store",
]
