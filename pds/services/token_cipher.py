"""Symmetric encryption utilities for protecting stored credentials."""

from __future__ import annotations

import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from pds.models.data_source import EncryptedCredentials


class TokenCipherService:
    """Encrypt and decrypt credential blobs with AES-256-GCM.

    The key is derived from the configured secret, so any string works as
    ``ENCRYPTION_KEY``. Every call to :meth:`encrypt` draws a fresh nonce,
    returned as ``iv`` next to the ciphertext.
    """

    _NONCE_BYTES = 12

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Encryption secret must be provided.")
        key = hashlib.sha256(secret.encode("utf-8")).digest()
        self._aead = AESGCM(key)

    def encrypt(self, plaintext: str) -> EncryptedCredentials:
        """Encrypt a plaintext string and return the iv/ciphertext pair."""
        nonce = os.urandom(self._NONCE_BYTES)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return EncryptedCredentials(iv=nonce.hex(), content=ciphertext.hex())

    def decrypt(self, payload: EncryptedCredentials) -> str:
        """Decrypt an iv/ciphertext pair and return the plaintext."""
        try:
            nonce = bytes.fromhex(payload.iv)
            plaintext = self._aead.decrypt(nonce, bytes.fromhex(payload.content), None)
        except (InvalidTag, ValueError) as exc:
            raise ValueError(
                "Failed to decrypt credentials; invalid ciphertext provided."
            ) from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherService"]
