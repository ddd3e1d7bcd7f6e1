"""Public schema exports."""

from .auth import AuthorizationUrlResponse, ConnectionStatusResponse, OAuthCallbackPayload
from .jira import (
    JiraIssueType,
    JiraIssueTypesResponse,
    JiraProject,
    JiraProjectsResponse,
)

__all__ = [
    "AuthorizationUrlResponse",
    "ConnectionStatusResponse",
    "JiraIssueType",
    "JiraIssueTypesResponse",
    "JiraProject",
    "JiraProjectsResponse",
    "OAuthCallbackPayload",
]
