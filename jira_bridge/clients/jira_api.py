"""
Thin Jira Cloud REST client used by routes once a bearer token is available.
"""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from jira_bridge.core.config import AtlassianSettings
from jira_bridge.utils.http import RetryConfig, request_with_retry

logger = logging.getLogger(__name__)


class JiraAPIError(Exception):
    """Raised when Jira or the Atlassian gateway returns an error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class JiraSite:
    cloud_id: str
    url: Optional[str] = None


def _token_digest(access_token: str) -> str:
    return hashlib.sha256(access_token.encode("utf-8")).hexdigest()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        messages = body.get("errorMessages") or []
        if messages:
            return ", ".join(str(message) for message in messages)
        errors = body.get("errors") or {}
        if isinstance(errors, dict) and errors:
            return ", ".join(f"{key}: {value}" for key, value in errors.items())
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


class JiraAPIClient:
    """Resolve the user's Jira site and read projects and issue types."""

    _SITE_CACHE_SIZE = 256

    def __init__(
        self,
        settings: AtlassianSettings,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        self._api_base_url = settings.api_base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._retry_config = retry_config
        self._sites: OrderedDict[str, JiraSite] = OrderedDict()

    async def _get_json(self, url: str, access_token: str, context: str) -> Any:
        if not access_token:
            raise JiraAPIError("OAuth access token is required.", status_code=401)
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await request_with_retry(
                    client.get, url, headers=headers, retry_config=self._retry_config
                )
            except httpx.HTTPStatusError as exc:
                message = f"{context}: {_error_message(exc.response)}"
                raise JiraAPIError(
                    message, status_code=exc.response.status_code
                ) from exc
            except httpx.HTTPError as exc:
                raise JiraAPIError(f"{context}: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise JiraAPIError(f"{context}: non-JSON response", status_code=502) from exc

    async def get_accessible_site(self, access_token: str) -> JiraSite:
        """Return the first Jira site the token grants access to."""
        digest = _token_digest(access_token) if access_token else ""
        cached = self._sites.get(digest)
        if cached is not None:
            self._sites.move_to_end(digest)
            return cached

        resources = await self._get_json(
            f"{self._api_base_url}/oauth/token/accessible-resources",
            access_token,
            "Failed to get accessible resources",
        )
        if not isinstance(resources, list):
            raise JiraAPIError(
                "Accessible resources response was not a list.", status_code=502
            )
        if not resources:
            raise JiraAPIError("No accessible Jira resources found.", status_code=404)
        first = resources[0]
        cloud_id = first.get("id") if isinstance(first, dict) else None
        if not isinstance(cloud_id, str) or not cloud_id:
            raise JiraAPIError(
                "Accessible resource is missing its cloud id.", status_code=502
            )

        site = JiraSite(cloud_id=cloud_id, url=first.get("url"))
        self._sites[digest] = site
        if len(self._sites) > self._SITE_CACHE_SIZE:
            self._sites.popitem(last=False)
        logger.debug("Resolved Jira cloud id %s", site.cloud_id)
        return site

    async def _rest_base_url(self, access_token: str) -> str:
        site = await self.get_accessible_site(access_token)
        return f"{self._api_base_url}/ex/jira/{site.cloud_id}/rest/api/3"

    async def get_projects(self, access_token: str) -> List[Dict[str, Any]]:
        """List projects visible to the connected user."""
        base_url = await self._rest_base_url(access_token)
        projects = await self._get_json(
            f"{base_url}/project", access_token, "Failed to get projects"
        )
        return [
            {
                "key": project.get("key"),
                "id": project.get("id"),
                "name": project.get("name"),
                "project_type_key": project.get("projectTypeKey"),
            }
            for project in projects
        ]

    async def get_issue_types(
        self, project_key: str, access_token: str
    ) -> List[Dict[str, Any]]:
        """Return the issue types configured for ``project_key``."""
        if not project_key:
            raise JiraAPIError("Project key is required.", status_code=400)
        base_url = await self._rest_base_url(access_token)
        project = await self._get_json(
            f"{base_url}/project/{project_key}",
            access_token,
            "Failed to get project issue types",
        )
        return [
            {
                "id": issue_type.get("id"),
                "name": issue_type.get("name"),
                "subtask": bool(issue_type.get("subtask", False)),
                "description": issue_type.get("description"),
            }
            for issue_type in project.get("issueTypes") or []
        ]


__all__ = ["JiraAPIClient", "JiraAPIError", "JiraSite"]
