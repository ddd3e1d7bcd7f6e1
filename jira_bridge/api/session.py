"""
Session cookie middleware.

Each browser gets an opaque random session id in an HTTP-only cookie. Only the
id travels to the client; everything stored for the session lives in the
server-side session store.
"""

from __future__ import annotations

import re
import secrets

from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

_SESSION_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{32,128}")


class SessionCookieMiddleware(BaseHTTPMiddleware):
    """Attach ``request.state.session_id`` and issue the cookie when it is new."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        cookie_name: str,
        max_age: int,
        secure: bool = False,
    ) -> None:
        super().__init__(app)
        self._cookie_name = cookie_name
        self._max_age = max_age
        self._secure = secure

    async def dispatch(self, request: Request, call_next):
        session_id = request.cookies.get(self._cookie_name)
        issued = False
        if not session_id or not _SESSION_ID_PATTERN.fullmatch(session_id):
            session_id = secrets.token_urlsafe(32)
            issued = True

        request.state.session_id = session_id
        response = await call_next(request)

        if issued:
            response.set_cookie(
                self._cookie_name,
                session_id,
                max_age=self._max_age,
                httponly=True,
                secure=self._secure,
                # Cross-site front ends need SameSite=None, which browsers only accept over HTTPS.
                samesite="none" if self._secure else "lax",
            )
        return response


def get_session_id(request: Request) -> str:
    """FastAPI dependency returning the current session id."""
    session_id = getattr(request.state, "session_id", None)
    if not session_id:
        raise HTTPException(status_code=500, detail="Session middleware is not installed.")
    return session_id


__all__ = ["SessionCookieMiddleware", "get_session_id"]
