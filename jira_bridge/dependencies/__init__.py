"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_atlassian_oauth_client,
    get_credential_vault,
    get_jira_api_client,
    get_jira_token_service,
    get_session_store,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_atlassian_oauth_client",
    "get_credential_vault",
    "get_jira_api_client",
    "get_jira_token_service",
    "get_session_store",
]
