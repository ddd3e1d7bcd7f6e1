"""
FastAPI application entrypoint for the Jira integration service.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jira_bridge.api.routes import router as api_router
from jira_bridge.api.session import SessionCookieMiddleware
from jira_bridge.core.config import ConfigurationError, get_settings
from jira_bridge.core.logging import configure_logging
from jira_bridge.dependencies import get_jira_token_service

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    # Refuse to start rather than fail the first OAuth request.
    try:
        get_jira_token_service()
    except ConfigurationError:
        logger.critical("Jira integration is misconfigured; refusing to start.")
        raise

    app = FastAPI(
        title="Jira Bridge",
        version="0.1.0",
        description="Jira OAuth connection and token lifecycle for the task generator.",
    )
    app.add_middleware(
        SessionCookieMiddleware,
        cookie_name=settings.security.session_cookie_name,
        max_age=settings.security.session_max_age_seconds,
        secure=settings.security.session_cookie_secure,
    )
    if settings.frontend_base_url:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(settings.frontend_base_url).rstrip("/")],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
