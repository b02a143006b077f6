"""
Field Cipher for Confidential Data.

Encrypts and decrypts single field values with AES-256-GCM.

Envelope format (stored as opaque text):
    base64(nonce || ciphertext || tag)

- 12-byte nonce, freshly random for every encryption (never reused, so the
  same plaintext encrypted twice gives two different envelopes)
- 16-byte GCM tag, so tampered or foreign input fails authentication
  instead of decrypting to garbage
- The value is JSON-serialized before encryption, so strings come back as
  strings and structured values come back as dicts/lists

Empty values (None and "") pass through unchanged in both directions.

The default encrypt()/decrypt() never raise: any failure (no key, bad
base64, authentication failure) is logged and returns None so that callers
can skip a field instead of failing a whole record. The *_or_raise variants
raise KeyUnavailableError / CipherError for callers that want strictness.

Usage:
    from confidential_data.lib.encryption import FieldCipher
    from confidential_data.lib.key_provider import KeyProvider

    cipher = FieldCipher(KeyProvider.from_settings(settings))
    envelope = cipher.encrypt("alice@example.com")
    cipher.decrypt(envelope)  # "alice@example.com"
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from confidential_data.lib.exceptions import CipherError, KeyUnavailableError
from confidential_data.lib.key_provider import KeyProvider

logger = structlog.get_logger(__name__)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


class FieldCipher:
    """
    AES-256-GCM field cipher.

    The key is resolved lazily through the injected KeyProvider on every
    call; the provider memoizes it after the first success.
    """

    NONCE_SIZE = 12  # 96 bits for GCM (recommended)
    TAG_SIZE = 16  # 128-bit GCM authentication tag
    ALGORITHM = "AES-256-GCM"

    def __init__(self, key_provider: KeyProvider) -> None:
        self._key_provider = key_provider

    def is_ready(self) -> bool:
        """Check if encryption is ready (key is available)."""
        return self._key_provider.is_ready()

    def key_source(self) -> str | None:
        """Name of the key source in use, if any."""
        return self._key_provider.active_source()

    def _key(self) -> bytes:
        key = self._key_provider.resolve_key()
        if key is None:
            raise KeyUnavailableError("No encryption key available")
        return key.material

    # -------------------------------------------------------------------------
    # Strict variants
    # -------------------------------------------------------------------------

    def encrypt_or_raise(self, value: Any) -> Any:
        """
        Encrypt a field value.

        Args:
            value: Any JSON-serializable value. None and "" are returned as is.

        Returns:
            Base64 envelope string

        Raises:
            KeyUnavailableError: If no key source yields key material
            CipherError: If the value cannot be serialized or encrypted
        """
        if _is_empty(value):
            return value

        key = self._key()
        try:
            plaintext = json.dumps(value, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise CipherError(f"Value is not serializable: {type(value).__name__}") from e

        nonce = os.urandom(self.NONCE_SIZE)
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt_or_raise(self, envelope: Any) -> Any:
        """
        Decrypt an envelope.

        Args:
            envelope: Base64 envelope string. None and "" are returned as is.

        Returns:
            The original logical value

        Raises:
            KeyUnavailableError: If no key source yields key material
            CipherError: If the envelope is malformed or fails authentication
        """
        if _is_empty(envelope):
            return envelope

        key = self._key()
        if not isinstance(envelope, str):
            raise CipherError(f"Envelope must be a string, got {type(envelope).__name__}")

        try:
            data = base64.b64decode(envelope, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CipherError("Invalid base64 encoding") from e

        if len(data) < self.NONCE_SIZE + self.TAG_SIZE:
            raise CipherError("Envelope too short")

        nonce = data[: self.NONCE_SIZE]
        ciphertext = data[self.NONCE_SIZE :]
        try:
            plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise CipherError("Authentication failed") from e

        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CipherError("Decrypted payload is not valid") from e

    # -------------------------------------------------------------------------
    # Graceful variants
    # -------------------------------------------------------------------------

    def encrypt(self, value: Any) -> Any:
        """
        Encrypt a field value, returning None on failure.

        Returns:
            Envelope string, the unchanged value if it is empty, or None
            if encryption failed (logged at error).
        """
        try:
            return self.encrypt_or_raise(value)
        except KeyUnavailableError:
            logger.error("field_encryption_skipped", reason="no_key")
            return None
        except CipherError as e:
            logger.error("field_encryption_failed", error=str(e))
            return None

    def decrypt(self, envelope: Any) -> Any:
        """
        Decrypt an envelope, returning None on failure.

        Returns:
            The decrypted value, the unchanged input if it is empty, or None
            if decryption failed (logged at error).
        """
        try:
            return self.decrypt_or_raise(envelope)
        except KeyUnavailableError:
            logger.error("field_decryption_skipped", reason="no_key")
            return None
        except CipherError as e:
            logger.error("field_decryption_failed", error=str(e))
            return None

    @classmethod
    def looks_like_envelope(cls, value: Any) -> bool:
        """
        Check whether a stored value has the shape of an envelope.

        Strict base64 and long enough to hold nonce, tag and at least one
        payload byte. A True result does not prove authenticity; GCM
        authentication in decrypt() does.
        """
        if not isinstance(value, str) or not value:
            return False
        try:
            data = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            return False
        return len(data) > cls.NONCE_SIZE + cls.TAG_SIZE


__all__ = ["FieldCipher"]
