"""
FastAPI routes for the Jira integration.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from jira_bridge.api.session import get_session_id
from jira_bridge.clients import JiraAPIError, OAuthExchangeError
from jira_bridge.core.logging import session_tag
from jira_bridge.dependencies import (
    SettingsDependency,
    get_jira_api_client,
    get_jira_token_service,
)
from jira_bridge.schemas import (
    AuthorizationUrlResponse,
    ConnectionStatusResponse,
    JiraIssueTypesResponse,
    JiraProjectsResponse,
    OAuthCallbackPayload,
)
from jira_bridge.services import CSRFStateMismatchError

router = APIRouter()
logger = logging.getLogger(__name__)

_NOT_CONNECTED_DETAIL = "Not authenticated. Please connect to Jira first."


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


async def _require_access_token(token_service: Any, session_id: str) -> str:
    access_token = await token_service.get_valid_access_token(session_id)
    if not access_token:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED, detail=_NOT_CONNECTED_DETAIL
        )
    return access_token


def _jira_failure(exc: JiraAPIError) -> HTTPException:
    if exc.status_code == HTTPStatus.UNAUTHORIZED:
        return HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail=str(exc))
    return HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(exc))


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get(
    "/jira/oauth/authorize",
    status_code=HTTPStatus.OK,
    response_model=AuthorizationUrlResponse,
)
async def start_jira_oauth_flow(
    request: Request,
    token_service: Annotated[Any, Depends(get_jira_token_service)],
    session_id: Annotated[str, Depends(get_session_id)],
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Atlassian consent screen.",
    ),
) -> Any:
    """Kick off the OAuth flow by issuing a state token and authorization URL."""
    authorization_url, state = token_service.begin_authorization(session_id)

    if redirect or _wants_html(request):
        return RedirectResponse(
            url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    return {"authorization_url": authorization_url, "state": state}


@router.post("/jira/oauth/callback", status_code=HTTPStatus.OK)
async def handle_jira_oauth_callback(
    payload: OAuthCallbackPayload,
    token_service: Annotated[Any, Depends(get_jira_token_service)],
    session_id: Annotated[str, Depends(get_session_id)],
) -> dict:
    """Verify the state, exchange the code, and store the encrypted tokens."""
    try:
        await token_service.complete_authorization(
            session_id, payload.code, payload.state
        )
    except CSRFStateMismatchError as exc:
        logger.warning(
            "Rejected Jira OAuth callback for session %s: %s",
            session_tag(session_id),
            exc,
        )
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Invalid state parameter."
        ) from exc
    except OAuthExchangeError as exc:
        logger.warning(
            "Jira authorization code exchange failed for session %s: %s",
            session_tag(session_id),
            exc,
        )
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    return {"status": "connected"}


@router.get("/jira/oauth/callback", status_code=HTTPStatus.OK)
async def handle_jira_oauth_callback_get(
    request: Request,
    token_service: Annotated[Any, Depends(get_jira_token_service)],
    session_id: Annotated[str, Depends(get_session_id)],
    settings: SettingsDependency,
    state: str = Query(..., min_length=1, description="OAuth state token."),
    code: Optional[str] = Query(
        default=None, description="Authorization code returned by Atlassian."
    ),
    error: Optional[str] = Query(
        default=None, description="Error reported by Atlassian, e.g. access_denied."
    ),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    """Browser landing point for the Atlassian redirect."""
    if error or not code:
        # The pending state is spent even when the user declined consent.
        token_service.discard_pending_state(session_id)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=f"Jira authorization was not granted: {error or 'missing code'}.",
        )

    result = await handle_jira_oauth_callback(
        payload=OAuthCallbackPayload(state=state, code=code),
        token_service=token_service,
        session_id=session_id,
    )

    redirect_target = settings.frontend_base_url
    if redirect_target and (redirect or _wants_html(request)):
        return RedirectResponse(
            url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    return JSONResponse(content=result)


@router.get("/jira/config/status", response_model=ConnectionStatusResponse)
async def get_jira_connection_status(
    token_service: Annotated[Any, Depends(get_jira_token_service)],
    session_id: Annotated[str, Depends(get_session_id)],
) -> dict:
    """Report whether the session holds readable Jira tokens."""
    return {"authenticated": token_service.is_connected(session_id)}


@router.delete("/jira/config", status_code=HTTPStatus.OK)
async def disconnect_jira(
    token_service: Annotated[Any, Depends(get_jira_token_service)],
    session_id: Annotated[str, Depends(get_session_id)],
) -> dict:
    """Forget the session's Jira tokens."""
    token_service.clear_tokens(session_id)
    logger.info("Disconnected Jira for session %s", session_tag(session_id))
    return {"status": "disconnected"}


@router.get("/jira/projects", response_model=JiraProjectsResponse)
async def list_jira_projects(
    token_service: Annotated[Any, Depends(get_jira_token_service)],
    jira_client: Annotated[Any, Depends(get_jira_api_client)],
    session_id: Annotated[str, Depends(get_session_id)],
) -> dict:
    """List projects visible to the connected Jira user."""
    access_token = await _require_access_token(token_service, session_id)
    try:
        projects = await jira_client.get_projects(access_token)
    except JiraAPIError as exc:
        logger.warning("Listing Jira projects failed: %s", exc)
        raise _jira_failure(exc) from exc
    return {"projects": projects}


@router.get(
    "/jira/issue-types/{project_key}", response_model=JiraIssueTypesResponse
)
async def list_jira_issue_types(
    token_service: Annotated[Any, Depends(get_jira_token_service)],
    jira_client: Annotated[Any, Depends(get_jira_api_client)],
    session_id: Annotated[str, Depends(get_session_id)],
    project_key: str = Path(
        ..., pattern=r"^[A-Z]+$", description="Jira project key, uppercase letters only."
    ),
) -> dict:
    """Return the issue types available in a Jira project."""
    access_token = await _require_access_token(token_service, session_id)
    try:
        issue_types = await jira_client.get_issue_types(project_key, access_token)
    except JiraAPIError as exc:
        logger.warning("Listing issue types for %s failed: %s", project_key, exc)
        raise _jira_failure(exc) from exc
    return {"issue_types": issue_types}


__all__ = ["router"]
