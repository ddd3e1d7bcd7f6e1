"""Expose constructed client wrappers."""

from .atlassian_auth import (
    AtlassianOAuthClient,
    OAuthExchangeError,
    OAuthRefreshError,
    OAuthTokenError,
)
from .jira_api import JiraAPIClient, JiraAPIError
from .session_store import InMemorySessionStore, SessionStore, SQLiteSessionStore

__all__ = [
    "AtlassianOAuthClient",
    "InMemorySessionStore",
    "JiraAPIClient",
    "JiraAPIError",
    "OAuthExchangeError",
    "OAuthRefreshError",
    "OAuthTokenError",
    "SQLiteSessionStore",
    "SessionStore",
]
