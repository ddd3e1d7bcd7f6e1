"""Authenticated symmetric encryption for tokens kept in session records."""

from __future__ import annotations

import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from jira_bridge.core.config import ConfigurationError

_KEY_LENGTH = 32
_NONCE_LENGTH = 12
_TAG_LENGTH = 16
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1


class EncryptionError(ConfigurationError):
    """Raised when the vault cannot be built from the configured key material."""


class DecryptionError(ValueError):
    """Raised when a stored envelope is malformed, tampered with, or keyed differently."""


@dataclass(frozen=True, slots=True)
class CipherEnvelope:
    """Hex-encoded AES-GCM output: nonce, ciphertext, and authentication tag."""

    iv: str
    ciphertext: str
    tag: str

    def serialize(self) -> str:
        return f"{self.iv}:{self.ciphertext}:{self.tag}"

    @classmethod
    def parse(cls, value: str) -> "CipherEnvelope":
        if not isinstance(value, str):
            raise DecryptionError("Encrypted value must be a string.")
        parts = value.split(":")
        if len(parts) != 3:
            raise DecryptionError("Encrypted value is not a valid cipher envelope.")
        return cls(iv=parts[0], ciphertext=parts[1], tag=parts[2])


class CredentialVault:
    """Encrypt and decrypt token strings with a key derived from a server secret."""

    def __init__(self, *, secret: str, salt: str) -> None:
        if not isinstance(secret, str) or not secret.strip():
            raise EncryptionError("Credential encryption secret must be provided.")
        if not isinstance(salt, str) or not salt:
            raise EncryptionError("Credential encryption salt must be provided.")
        kdf = Scrypt(
            salt=salt.encode("utf-8"),
            length=_KEY_LENGTH,
            n=_SCRYPT_N,
            r=_SCRYPT_R,
            p=_SCRYPT_P,
        )
        self._aead = AESGCM(kdf.derive(secret.encode("utf-8")))

    def encrypt(self, plaintext: str) -> CipherEnvelope:
        """Encrypt ``plaintext`` under a fresh random nonce."""
        nonce = os.urandom(_NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return CipherEnvelope(
            iv=nonce.hex(),
            ciphertext=sealed[:-_TAG_LENGTH].hex(),
            tag=sealed[-_TAG_LENGTH:].hex(),
        )

    def decrypt(self, envelope: CipherEnvelope) -> str:
        """Return the plaintext, or raise ``DecryptionError`` if it cannot be trusted."""
        try:
            nonce = bytes.fromhex(envelope.iv)
            ciphertext = bytes.fromhex(envelope.ciphertext)
            tag = bytes.fromhex(envelope.tag)
        except (TypeError, ValueError) as exc:
            raise DecryptionError("Cipher envelope is not valid hex.") from exc
        if len(nonce) != _NONCE_LENGTH or len(tag) != _TAG_LENGTH:
            raise DecryptionError("Cipher envelope has an invalid nonce or tag length.")

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise DecryptionError(
                "Failed to decrypt token; ciphertext was altered or keyed differently."
            ) from exc

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:  # pragma: no cover - requires a forged tag
            raise DecryptionError("Decrypted token is not valid UTF-8.") from exc

    def encrypt_text(self, plaintext: str) -> str:
        """Encrypt and return the envelope in its storable string form."""
        return self.encrypt(plaintext).serialize()

    def decrypt_text(self, value: str) -> str:
        """Decrypt a string produced by ``encrypt_text``."""
        return self.decrypt(CipherEnvelope.parse(value))


__all__ = ["CipherEnvelope", "CredentialVault", "DecryptionError", "EncryptionError"]
