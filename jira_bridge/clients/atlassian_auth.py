"""
Atlassian OAuth 2.1 (3LO) utilities.

These helpers build the consent URL and talk to the Atlassian token endpoint
for the authorization-code and refresh-token grants.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Type
from urllib.parse import urlencode

import httpx
from fastapi import status
from pydantic import ValidationError

from jira_bridge.core.config import AtlassianSettings, OAuthSettings
from jira_bridge.models.oauth import TokenBundle


class OAuthTokenError(Exception):
    """Base class for failures reported by the token endpoint."""


class OAuthExchangeError(OAuthTokenError):
    """Raised when an authorization code cannot be exchanged for tokens."""


class OAuthRefreshError(OAuthTokenError):
    """Raised when a refresh token is rejected or the refresh call fails."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        detail = body.get("error_description") or body.get("error")
        if detail:
            return str(detail)
    return response.reason_phrase or f"HTTP {response.status_code}"


class AtlassianOAuthClient:
    """Build Atlassian authorization URLs and run token grants."""

    def __init__(
        self,
        atlassian_settings: AtlassianSettings,
        oauth_settings: OAuthSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._atlassian = atlassian_settings
        self._oauth = oauth_settings
        self._transport = transport
        self._clock = clock

    @property
    def is_configured(self) -> bool:
        return bool(self._atlassian.client_id and self._atlassian.client_secret)

    def build_authorization_url(
        self, state: str, scopes: Optional[Iterable[str] | str] = None
    ) -> str:
        """Construct the Atlassian consent URL."""
        if scopes is None:
            scope = " ".join(self._oauth.scopes)
        elif isinstance(scopes, str):
            scope = scopes
        else:
            scope = " ".join(scopes)

        params = {
            "audience": self._atlassian.audience,
            "client_id": self._atlassian.client_id or "",
            "scope": scope,
            "redirect_uri": str(self._atlassian.redirect_uri),
            "state": state,
            "response_type": "code",
            "prompt": "consent",
        }
        return f"{self._atlassian.authorization_url}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> TokenBundle:
        """Exchange an authorization code for a token bundle."""
        if not code:
            raise OAuthExchangeError("Authorization code is required.")
        payload = {
            "grant_type": "authorization_code",
            "client_id": self._atlassian.client_id,
            "client_secret": self._atlassian.client_secret,
            "code": code,
            "redirect_uri": str(self._atlassian.redirect_uri),
        }
        token_payload = await self._request_tokens(payload, OAuthExchangeError)
        return self._to_bundle(token_payload, OAuthExchangeError)

    async def refresh_access_token(self, refresh_token: str) -> TokenBundle:
        """
        Run the refresh-token grant.

        Atlassian may rotate refresh tokens; when the response carries none the
        refresh token that was sent is kept.
        """
        if not refresh_token:
            raise OAuthRefreshError("Refresh token is required.")
        payload = {
            "grant_type": "refresh_token",
            "client_id": self._atlassian.client_id,
            "client_secret": self._atlassian.client_secret,
            "refresh_token": refresh_token,
        }
        token_payload = await self._request_tokens(payload, OAuthRefreshError)
        return self._to_bundle(
            token_payload, OAuthRefreshError, fallback_refresh_token=refresh_token
        )

    async def _request_tokens(
        self, payload: Dict[str, Any], error_cls: Type[OAuthTokenError]
    ) -> Dict[str, Any]:
        if not self.is_configured:
            raise error_cls("OAuth client credentials not configured.")

        try:
            async with httpx.AsyncClient(
                timeout=self._oauth.http_timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(
                    self._atlassian.token_url,
                    json=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise error_cls(f"Token endpoint request failed: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            raise error_cls(
                f"Token endpoint rejected the {payload['grant_type']} grant: "
                f"{_error_detail(response)}"
            )

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise error_cls("Token endpoint returned a non-JSON body.") from exc
        if not isinstance(token_payload, dict):
            raise error_cls("Token endpoint returned an unexpected payload.")
        return token_payload

    def _to_bundle(
        self,
        token_payload: Dict[str, Any],
        error_cls: Type[OAuthTokenError],
        *,
        fallback_refresh_token: Optional[str] = None,
    ) -> TokenBundle:
        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")
        if not access_token or expires_in is None:
            raise error_cls("Incomplete token payload returned from Atlassian.")
        try:
            expires_in_seconds = int(expires_in)
        except (TypeError, ValueError) as exc:
            raise error_cls("Token payload carried a non-numeric expires_in.") from exc

        issued_at_ms = int(self._clock().timestamp() * 1000)
        try:
            return TokenBundle(
                access_token=access_token,
                refresh_token=token_payload.get("refresh_token") or fallback_refresh_token,
                expires_at=issued_at_ms + expires_in_seconds * 1000,
                scope=token_payload.get("scope") or "",
                token_type=token_payload.get("token_type") or "Bearer",
            )
        except ValidationError as exc:
            raise error_cls("Token endpoint returned a malformed payload.") from exc


__all__ = [
    "AtlassianOAuthClient",
    "OAuthExchangeError",
    "OAuthRefreshError",
    "OAuthTokenError",
]
