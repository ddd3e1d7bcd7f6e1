"""
Jira OAuth token lifecycle: authorization handshake, encrypted session storage,
and refresh-on-demand.

Per session the stored record moves between three states:

* absent: nothing in the session (initial state, after disconnect, after any
  unrecoverable failure);
* valid: ``now < expires_at - 5 minutes``;
* expired: the same predicate is false. Nothing marks the transition; the
  predicate is evaluated on every read.

``get_valid_access_token`` refreshes an expired record in place or drops it.
A record that cannot be decrypted is dropped as well, so a session left over
from a rotated key or an older storage format reads as "not connected" rather
than failing the request.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, Iterable, Optional, Tuple

from pydantic import ValidationError

from jira_bridge.clients.atlassian_auth import AtlassianOAuthClient, OAuthRefreshError
from jira_bridge.clients.session_store import SessionStore
from jira_bridge.core.config import ConfigurationError, OAuthSettings
from jira_bridge.core.logging import session_tag
from jira_bridge.models.oauth import EncryptedTokenRecord, PendingOAuthState, TokenBundle
from jira_bridge.services.credential_vault import CredentialVault, DecryptionError

logger = logging.getLogger(__name__)

TOKEN_SESSION_KEY = "jira_oauth"
STATE_SESSION_KEY = "jira_oauth_state"


class CSRFStateMismatchError(Exception):
    """Raised when a callback's state is missing, stale, replayed, or foreign."""


def generate_oauth_state() -> str:
    """Return a single-use, 256-bit random state value."""
    return secrets.token_hex(32)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class _RefreshGuard:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class JiraTokenService:
    """Owns the Jira OAuth flow and hands out valid access tokens per session."""

    _REFRESH_WINDOW = timedelta(minutes=5)

    def __init__(
        self,
        session_store: SessionStore,
        oauth_client: AtlassianOAuthClient,
        token_vault: CredentialVault,
        oauth_settings: OAuthSettings,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if not oauth_client.is_configured:
            raise ConfigurationError(
                "ATLASSIAN_CLIENT_ID and ATLASSIAN_CLIENT_SECRET must be set "
                "to enable the Jira integration."
            )
        self._sessions = session_store
        self._oauth = oauth_client
        self._vault = token_vault
        self._oauth_settings = oauth_settings
        self._clock = clock
        self._refresh_guards: Dict[str, _RefreshGuard] = {}

    # -- authorization handshake -------------------------------------------

    def build_authorization_url(
        self, state: str, scopes: Optional[Iterable[str] | str] = None
    ) -> str:
        return self._oauth.build_authorization_url(state, scopes)

    def begin_authorization(
        self, session_id: str, scopes: Optional[Iterable[str] | str] = None
    ) -> Tuple[str, str]:
        """Issue a fresh state for the session and return ``(url, state)``."""
        self._require_session(session_id)
        state = generate_oauth_state()
        pending = PendingOAuthState(value=state, issued_at=self._now_ms())
        self._sessions.set(session_id, STATE_SESSION_KEY, pending.model_dump())
        logger.info("Issued Jira OAuth state for session %s", session_tag(session_id))
        return self.build_authorization_url(state, scopes), state

    def consume_state(self, session_id: str, presented_state: Optional[str]) -> None:
        """
        Verify the callback state against the one issued for this session.

        The pending state is deleted before comparison, so it can be used only
        once whatever the outcome.
        """
        self._require_session(session_id)
        raw_pending = self._sessions.get(session_id, STATE_SESSION_KEY)
        self._sessions.delete(session_id, STATE_SESSION_KEY)

        if raw_pending is None:
            raise CSRFStateMismatchError("No OAuth authorization is pending for this session.")
        try:
            pending = PendingOAuthState.model_validate(raw_pending)
        except ValidationError as exc:
            raise CSRFStateMismatchError("Stored OAuth state is unreadable.") from exc

        if not presented_state or not hmac.compare_digest(
            pending.value.encode("utf-8"), presented_state.encode("utf-8")
        ):
            raise CSRFStateMismatchError("Invalid state parameter.")

        age_ms = self._now_ms() - pending.issued_at
        if age_ms > self._oauth_settings.state_ttl_seconds * 1000:
            raise CSRFStateMismatchError("OAuth state has expired.")

    def discard_pending_state(self, session_id: str) -> None:
        self._require_session(session_id)
        self._sessions.delete(session_id, STATE_SESSION_KEY)

    async def complete_authorization(
        self, session_id: str, code: str, state: Optional[str]
    ) -> TokenBundle:
        """Verify the state, exchange the code, and persist the resulting tokens."""
        self.consume_state(session_id, state)
        tokens = await self.exchange_authorization_code(code)
        self.store_tokens(session_id, tokens)
        logger.info("Connected Jira for session %s", session_tag(session_id))
        return tokens

    async def exchange_authorization_code(self, code: str) -> TokenBundle:
        return await self._oauth.exchange_authorization_code(code)

    async def refresh_access_token(self, refresh_token: str) -> TokenBundle:
        return await self._oauth.refresh_access_token(refresh_token)

    # -- session persistence -----------------------------------------------

    def store_tokens(self, session_id: str, tokens: TokenBundle) -> None:
        """Encrypt ``tokens`` and write them to the session record."""
        self._require_session(session_id)
        record = EncryptedTokenRecord(
            access_token_cipher=self._vault.encrypt_text(tokens.access_token),
            refresh_token_cipher=(
                self._vault.encrypt_text(tokens.refresh_token)
                if tokens.refresh_token
                else None
            ),
            expires_at=tokens.expires_at,
            scope=tokens.scope,
            token_type=tokens.token_type,
        )
        self._sessions.set(session_id, TOKEN_SESSION_KEY, record.model_dump())

    def get_tokens(self, session_id: str) -> Optional[TokenBundle]:
        """Return the decrypted tokens, or ``None`` when absent or unreadable."""
        self._require_session(session_id)
        raw_record = self._sessions.get(session_id, TOKEN_SESSION_KEY)
        if raw_record is None:
            return None

        try:
            record = EncryptedTokenRecord.model_validate(raw_record)
            access_token = self._vault.decrypt_text(record.access_token_cipher)
            refresh_token = (
                self._vault.decrypt_text(record.refresh_token_cipher)
                if record.refresh_token_cipher
                else None
            )
            return TokenBundle(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=record.expires_at,
                scope=record.scope,
                token_type=record.token_type,
            )
        except (DecryptionError, ValidationError) as exc:
            self._discard_unreadable_record(session_id, exc)
            return None

    def _discard_unreadable_record(self, session_id: str, exc: Exception) -> None:
        # An unreadable record means the user simply has to reconnect.
        logger.warning(
            "Dropping unreadable Jira token record for session %s: %s",
            session_tag(session_id),
            type(exc).__name__,
        )
        self.clear_tokens(session_id)

    def clear_tokens(self, session_id: str) -> None:
        self._require_session(session_id)
        self._sessions.delete(session_id, TOKEN_SESSION_KEY)

    def is_connected(self, session_id: str) -> bool:
        return self.get_tokens(session_id) is not None

    # -- validity and refresh ----------------------------------------------

    def is_expired(self, expires_at: int) -> bool:
        """True once ``now`` is inside the refresh window before ``expires_at``."""
        window_ms = int(self._REFRESH_WINDOW.total_seconds() * 1000)
        return self._now_ms() >= expires_at - window_ms

    async def get_valid_access_token(self, session_id: str) -> Optional[str]:
        """
        Return a usable access token for the session, refreshing it if needed.

        Returns ``None`` whenever the session holds no usable credential; the
        record is cleared on every path that returns ``None`` after finding one.
        """
        tokens = self.get_tokens(session_id)
        if tokens is None:
            return None
        if not self.is_expired(tokens.expires_at):
            return tokens.access_token

        async with self._refresh_guard(session_id):
            # A concurrent request may have refreshed while this one waited.
            tokens = self.get_tokens(session_id)
            if tokens is None:
                return None
            if not self.is_expired(tokens.expires_at):
                return tokens.access_token

            if not tokens.refresh_token:
                logger.info(
                    "Jira token expired without refresh token for session %s",
                    session_tag(session_id),
                )
                self.clear_tokens(session_id)
                return None

            try:
                refreshed = await self.refresh_access_token(tokens.refresh_token)
            except OAuthRefreshError as exc:
                logger.warning(
                    "Jira token refresh failed for session %s: %s",
                    session_tag(session_id),
                    exc,
                )
                self.clear_tokens(session_id)
                return None

            self.store_tokens(session_id, refreshed)
            logger.info("Refreshed Jira token for session %s", session_tag(session_id))
            return refreshed.access_token

    @asynccontextmanager
    async def _refresh_guard(self, session_id: str) -> AsyncIterator[None]:
        guard = self._refresh_guards.get(session_id)
        if guard is None:
            guard = self._refresh_guards[session_id] = _RefreshGuard()
        guard.users += 1
        try:
            async with guard.lock:
                yield
        finally:
            guard.users -= 1
            if guard.users == 0:
                self._refresh_guards.pop(session_id, None)

    # -- helpers -----------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    @staticmethod
    def _require_session(session_id: str) -> None:
        if not session_id:
            raise ValueError("A session id is required.")


__all__ = [
    "CSRFStateMismatchError",
    "JiraTokenService",
    "STATE_SESSION_KEY",
    "TOKEN_SESSION_KEY",
    "generate_oauth_state",
]
