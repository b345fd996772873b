"""
Tool: Token Encryption
Purpose: Optional encryption at rest for cached identity-provider tokens

Features:
- AES-256-GCM, random 96-bit nonce prepended to each ciphertext
- Key supplied as base64 in CALHUB_ENCRYPTION_KEY (32 bytes decoded)
- Falls back to plaintext with a warning when no key is configured, so a
  local single-user setup keeps working

Usage:
    from calhub.security.token_crypto import TokenCipher

    cipher = TokenCipher.from_key(os.environ.get("CALHUB_ENCRYPTION_KEY"))
    blob = cipher.encrypt(b"...")
    data = cipher.decrypt(blob)

Security Notes:
    - Never logs key material or decrypted values
    - A wrong key surfaces as cryptography.exceptions.InvalidTag on decrypt
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

NONCE_BYTES = 12
KEY_BYTES = 32


def generate_key() -> str:
    """New random key, base64-encoded, suitable for CALHUB_ENCRYPTION_KEY."""
    return base64.b64encode(AESGCM.generate_key(bit_length=KEY_BYTES * 8)).decode("ascii")


class TokenCipher:
    """Encrypts token blobs when a key is configured, passes them through otherwise."""

    def __init__(self, key: bytes | None = None):
        if key is not None and len(key) != KEY_BYTES:
            raise ValueError(f"Encryption key must be {KEY_BYTES} bytes, got {len(key)}.")
        self._aesgcm = AESGCM(key) if key is not None else None

    @classmethod
    def from_key(cls, key_b64: str | None) -> TokenCipher:
        """Build from a base64 key; a missing or malformed key means plaintext."""
        if not key_b64:
            logger.warning(
                "No encryption key configured. Token caches will be stored in plaintext. "
                "Set CALHUB_ENCRYPTION_KEY for production use."
            )
            return cls()

        try:
            key = base64.b64decode(key_b64, validate=True)
        except (binascii.Error, ValueError):
            logger.error("CALHUB_ENCRYPTION_KEY is not valid base64. Falling back to plaintext storage.")
            return cls()

        if len(key) != KEY_BYTES:
            logger.error(
                f"CALHUB_ENCRYPTION_KEY must decode to {KEY_BYTES} bytes, got {len(key)}. "
                "Falling back to plaintext storage."
            )
            return cls()

        return cls(key)

    @property
    def enabled(self) -> bool:
        return self._aesgcm is not None

    def encrypt(self, data: bytes) -> bytes:
        if self._aesgcm is None:
            return data
        nonce = secrets.token_bytes(NONCE_BYTES)
        return nonce + self._aesgcm.encrypt(nonce, data, None)

    def decrypt(self, blob: bytes) -> bytes:
        if self._aesgcm is None:
            return blob
        return self._aesgcm.decrypt(blob[:NONCE_BYTES], blob[NONCE_BYTES:], None)
