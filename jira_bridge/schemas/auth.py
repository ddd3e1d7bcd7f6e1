"""Schemas related to OAuth flows."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(
        ..., min_length=1, description="Authorization code returned by Atlassian."
    )
    state: str = Field(
        ..., min_length=1, description="Opaque state token issued when starting OAuth."
    )


class AuthorizationUrlResponse(BaseModel):
    authorization_url: str
    state: str


class ConnectionStatusResponse(BaseModel):
    authenticated: bool


__all__ = [
    "AuthorizationUrlResponse",
    "ConnectionStatusResponse",
    "OAuthCallbackPayload",
]
