from __future__ import annotations

import json
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from jira_bridge.clients.atlassian_auth import (
    AtlassianOAuthClient,
    OAuthExchangeError,
    OAuthRefreshError,
)
from jira_bridge.core.config import AtlassianSettings, OAuthSettings

FIXED_NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)
FIXED_NOW_MS = int(FIXED_NOW.timestamp() * 1000)


def _settings(**overrides) -> AtlassianSettings:
    return AtlassianSettings().model_copy(
        update={
            "client_id": "client-123",
            "client_secret": "secret-456",
            "redirect_uri": "https://example.com/api/jira/oauth/callback",
            **overrides,
        }
    )


def _client(handler=None, **overrides) -> AtlassianOAuthClient:
    transport = httpx.MockTransport(handler) if handler else None
    return AtlassianOAuthClient(
        _settings(**overrides),
        OAuthSettings(),
        transport=transport,
        clock=lambda: FIXED_NOW,
    )


class RecordingHandler:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


def test_authorization_url_carries_flow_parameters() -> None:
    url = _client().build_authorization_url("state-xyz")

    parts = urlsplit(url)
    params = {key: values[0] for key, values in parse_qs(parts.query).items()}
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://auth.atlassian.com/authorize"
    assert params == {
        "audience": "api.atlassian.com",
        "client_id": "client-123",
        "scope": "read:jira-work write:jira-work manage:jira-project",
        "redirect_uri": "https://example.com/api/jira/oauth/callback",
        "state": "state-xyz",
        "response_type": "code",
        "prompt": "consent",
    }


@pytest.mark.parametrize(
    "scopes, expected",
    [
        ("read:jira-user offline_access", "read:jira-user offline_access"),
        (["read:jira-work", "offline_access"], "read:jira-work offline_access"),
    ],
)
def test_authorization_url_accepts_explicit_scopes(scopes, expected) -> None:
    url = _client().build_authorization_url("s", scopes)

    assert parse_qs(urlsplit(url).query)["scope"] == [expected]


@pytest.mark.asyncio
async def test_exchange_posts_json_and_computes_absolute_expiry() -> None:
    handler = RecordingHandler(
        httpx.Response(
            200,
            json={
                "access_token": "access-1",
                "refresh_token": "refresh-1",
                "expires_in": 3600,
                "scope": "read:jira-work",
                "token_type": "Bearer",
            },
        )
    )

    bundle = await _client(handler).exchange_authorization_code("code-1")

    assert bundle.access_token == "access-1"
    assert bundle.refresh_token == "refresh-1"
    assert bundle.expires_at == FIXED_NOW_MS + 3_600_000
    assert bundle.scope == "read:jira-work"
    assert handler.requests[0].url == "https://auth.atlassian.com/oauth/token"
    assert handler.bodies == [
        {
            "grant_type": "authorization_code",
            "client_id": "client-123",
            "client_secret": "secret-456",
            "code": "code-1",
            "redirect_uri": "https://example.com/api/jira/oauth/callback",
        }
    ]


@pytest.mark.asyncio
async def test_exchange_rejection_raises_with_provider_detail() -> None:
    handler = RecordingHandler(
        httpx.Response(
            403,
            json={"error": "invalid_grant", "error_description": "Invalid authorization code"},
        )
    )

    with pytest.raises(OAuthExchangeError, match="Invalid authorization code"):
        await _client(handler).exchange_authorization_code("used-code")
    assert len(handler.requests) == 1


@pytest.mark.asyncio
async def test_exchange_without_credentials_never_calls_provider() -> None:
    handler = RecordingHandler(httpx.Response(200, json={}))

    with pytest.raises(OAuthExchangeError, match="not configured"):
        await _client(handler, client_secret=None).exchange_authorization_code("code")
    assert handler.requests == []


@pytest.mark.asyncio
async def test_exchange_requires_code() -> None:
    with pytest.raises(OAuthExchangeError):
        await _client().exchange_authorization_code("")


@pytest.mark.asyncio
async def test_incomplete_payload_is_an_exchange_error() -> None:
    handler = RecordingHandler(httpx.Response(200, json={"access_token": "a"}))

    with pytest.raises(OAuthExchangeError, match="Incomplete"):
        await _client(handler).exchange_authorization_code("code")


@pytest.mark.asyncio
async def test_transport_failure_is_a_refresh_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(OAuthRefreshError):
        await _client(handler).refresh_access_token("refresh-1")


@pytest.mark.asyncio
async def test_refresh_prefers_rotated_refresh_token() -> None:
    handler = RecordingHandler(
        httpx.Response(
            200,
            json={"access_token": "access-2", "refresh_token": "refresh-2", "expires_in": 60},
        )
    )

    bundle = await _client(handler).refresh_access_token("refresh-1")

    assert bundle.refresh_token == "refresh-2"
    assert bundle.token_type == "Bearer"
    assert handler.bodies[0]["grant_type"] == "refresh_token"
    assert handler.bodies[0]["refresh_token"] == "refresh-1"


@pytest.mark.asyncio
async def test_refresh_keeps_old_refresh_token_when_not_rotated() -> None:
    handler = RecordingHandler(
        httpx.Response(200, json={"access_token": "access-2", "expires_in": 60})
    )

    bundle = await _client(handler).refresh_access_token("refresh-1")

    assert bundle.refresh_token == "refresh-1"
    assert bundle.expires_at == FIXED_NOW_MS + 60_000


@pytest.mark.asyncio
async def test_refresh_rejection_raises_refresh_error() -> None:
    handler = RecordingHandler(httpx.Response(400, text="bad request"))

    with pytest.raises(OAuthRefreshError):
        await _client(handler).refresh_access_token("refresh-1")


MALFORMED_PAYLOADS = [
    {"access_token": 12345, "expires_in": 3600},
    {"access_token": "a", "expires_in": 3600, "scope": ["read:jira-work"]},
    {"access_token": "a", "expires_in": 3600, "refresh_token": 7},
    {"access_token": "a", "expires_in": 3600, "token_type": {"kind": "Bearer"}},
]


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", MALFORMED_PAYLOADS)
async def test_mistyped_exchange_payload_is_an_exchange_error(payload) -> None:
    handler = RecordingHandler(httpx.Response(200, json=payload))

    with pytest.raises(OAuthExchangeError, match="malformed"):
        await _client(handler).exchange_authorization_code("code")


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", MALFORMED_PAYLOADS)
async def test_mistyped_refresh_payload_is_a_refresh_error(payload) -> None:
    handler = RecordingHandler(httpx.Response(200, json=payload))

    with pytest.raises(OAuthRefreshError, match="malformed"):
        await _client(handler).refresh_access_token("refresh-1")
