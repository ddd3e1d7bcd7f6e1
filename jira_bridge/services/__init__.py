"""Service layer exports."""

from .credential_vault import (
    CipherEnvelope,
    CredentialVault,
    DecryptionError,
    EncryptionError,
)
from .jira_tokens import CSRFStateMismatchError, JiraTokenService, generate_oauth_state

__all__ = [
    "CSRFStateMismatchError",
    "CipherEnvelope",
    "CredentialVault",
    "DecryptionError",
    "EncryptionError",
    "JiraTokenService",
    "generate_oauth_state",
]
