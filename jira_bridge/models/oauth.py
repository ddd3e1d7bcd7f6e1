"""
Domain models for OAuth token handling and session persistence.
"""

from typing import Optional

from pydantic import BaseModel, Field


class TokenBundle(BaseModel):
    """Decrypted tokens as returned by the Atlassian token endpoint."""

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_at: int = Field(..., description="Absolute expiry in epoch milliseconds.")
    scope: str = ""
    token_type: str = "Bearer"


class EncryptedTokenRecord(BaseModel):
    """Token record persisted inside a session; only the tokens are encrypted."""

    access_token_cipher: str = Field(..., min_length=1)
    refresh_token_cipher: Optional[str] = None
    expires_at: int
    scope: str = ""
    token_type: str = "Bearer"


class PendingOAuthState(BaseModel):
    """CSRF state issued for a single authorization round trip."""

    value: str = Field(..., min_length=1)
    issued_at: int = Field(..., description="Issue time in epoch milliseconds.")


__all__ = ["EncryptedTokenRecord", "PendingOAuthState", "TokenBundle"]
