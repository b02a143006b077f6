"""
Key resolution for Confidential Data.

Resolves raw key material from an ordered list of sources and derives the
256-bit field encryption key with HKDF-SHA256.

Source priority (first non-empty value wins):
1. Mounted secret file (/run/secrets/user_confidential_data_key)
2. Environment variable (USER_CONFIDENTIAL_DATA_KEY)
3. Application configuration (EncryptionSettings.encryption_key)
4. OS keyring, only when EncryptionSettings.keyring_service is set

The derived key is memoized for the lifetime of the provider. A key source
change therefore requires a process restart. Absence of key material is not
an exception: resolve_key() returns None and logs at error severity.

Usage:
    from confidential_data.lib.key_provider import KeyProvider

    provider = KeyProvider.from_settings(settings)
    key = provider.resolve_key()
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Protocol

import keyring
import keyring.errors
import structlog
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from confidential_data.lib.config import EncryptionSettings

logger = structlog.get_logger(__name__)

KEY_SIZE = 32  # 256 bits for AES-256

# HKDF context unique to this subsystem, so a master secret shared with
# other subsystems never yields the same key.
HKDF_SALT = b"user_confidential_data"
HKDF_INFO = b"user_confidential_data_encryption_v1"


@dataclass(frozen=True)
class DerivedKey:
    """
    Derived symmetric key.

    Attributes:
        material: 32 raw key bytes (never logged or repr'd)
        source: Name of the key source that produced the key material
    """

    material: bytes = field(repr=False)
    source: str


def derive_key(key_material: str | bytes) -> bytes:
    """
    Derive the 32-byte field key from raw key material.

    Deterministic: the same material always yields the same key.
    """
    if isinstance(key_material, str):
        key_material = key_material.encode("utf-8")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=HKDF_SALT,
        info=HKDF_INFO,
    )
    return hkdf.derive(key_material)


# =============================================================================
# Key Sources
# =============================================================================


class KeySource(Protocol):
    """A place key material can be read from."""

    name: str

    def read(self) -> str | None:
        """Return raw key material, or None if this source has none."""
        ...


class SecretFileKeySource:
    """Mounted secret file (e.g. a Docker or Kubernetes secret)."""

    name = "secret_file"

    def __init__(self, path: str) -> None:
        self.path = path

    def read(self) -> str | None:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                "key_source_read_failed",
                source=self.name,
                error=type(e).__name__,
            )
            return None


class EnvironmentKeySource:
    """Environment variable."""

    name = "environment"

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name

    def read(self) -> str | None:
        return os.environ.get(self.var_name)


class ConfigKeySource:
    """Key material from application configuration."""

    name = "config"

    def __init__(self, value: str | None) -> None:
        self._value = value

    def read(self) -> str | None:
        return self._value


class KeyringKeySource:
    """OS keyring entry (service name from settings, user "encryption_key")."""

    name = "keyring"
    USERNAME = "encryption_key"

    def __init__(self, service: str) -> None:
        self.service = service

    def read(self) -> str | None:
        try:
            return keyring.get_password(self.service, self.USERNAME)
        except keyring.errors.KeyringError as e:
            logger.warning(
                "key_source_read_failed",
                source=self.name,
                error=type(e).__name__,
            )
            return None


# =============================================================================
# Key Provider
# =============================================================================


class KeyProvider:
    """
    Resolves and memoizes the derived field key.

    Concurrent cold-start resolution is benign: both callers derive the
    same key from the same material and the last write wins.
    """

    def __init__(self, sources: list[KeySource]) -> None:
        self._sources = list(sources)
        self._key: DerivedKey | None = None

    @classmethod
    def from_settings(cls, settings: EncryptionSettings | None = None) -> KeyProvider:
        """Build the provider with the standard source order."""
        settings = settings or EncryptionSettings()
        sources: list[KeySource] = [
            SecretFileKeySource(settings.secret_file),
            EnvironmentKeySource(settings.key_env_var),
            ConfigKeySource(settings.encryption_key),
        ]
        if settings.keyring_service:
            sources.append(KeyringKeySource(settings.keyring_service))
        return cls(sources)

    @property
    def sources(self) -> tuple[KeySource, ...]:
        return tuple(self._sources)

    def resolve_key(self) -> DerivedKey | None:
        """
        Resolve the derived key.

        Returns:
            The memoized DerivedKey, or None if no source yields material.
            A failed resolution is not cached.
        """
        if self._key is not None:
            return self._key

        for source in self._sources:
            raw = source.read()
            if raw is None:
                continue
            raw = raw.strip()
            if not raw:
                continue
            self._key = DerivedKey(material=derive_key(raw), source=source.name)
            logger.info("encryption_key_resolved", source=source.name)
            return self._key

        logger.error(
            "encryption_key_unavailable",
            sources=[source.name for source in self._sources],
        )
        return None

    def is_ready(self) -> bool:
        """Check if a key is available."""
        return self.resolve_key() is not None

    def active_source(self) -> str | None:
        """Name of the source the key was resolved from, if any."""
        key = self.resolve_key()
        return key.source if key is not None else None

    def reset(self) -> None:
        """Forget the memoized key."""
        self._key = None


__all__ = [
    "ConfigKeySource",
    "DerivedKey",
    "EnvironmentKeySource",
    "HKDF_INFO",
    "HKDF_SALT",
    "KEY_SIZE",
    "KeyProvider",
    "KeyringKeySource",
    "KeySource",
    "SecretFileKeySource",
    "derive_key",
]
