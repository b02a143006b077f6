"""
Lib package for Confidential Data.

Contains shared utilities:
- encryption.py: Field cipher (AES-256-GCM envelopes)
- key_provider.py: Key source chain and HKDF key derivation
- entity_encryption.py: Record encryption engine
- field_registry.py: Encrypted Field Set
- access.py: Owner-based access rules
- config.py: Encryption settings
- exceptions.py: Exception hierarchy
- logging.py: structlog setup

Only the modules without model dependencies are re-exported here; import
the record-level helpers from their own modules.
"""

from confidential_data.lib.config import EncryptionSettings
from confidential_data.lib.encryption import FieldCipher
from confidential_data.lib.exceptions import (
    AccessDeniedError,
    CandidateLimitExceeded,
    CipherError,
    ConfidentialDataError,
    ConfigurationError,
    EncryptionError,
    InvalidConditionError,
    KeyUnavailableError,
    QueryError,
    RecordNotFoundError,
    StorageError,
)
from confidential_data.lib.key_provider import DerivedKey, KeyProvider

__all__ = [
    # Config
    "EncryptionSettings",
    # Encryption
    "DerivedKey",
    "FieldCipher",
    "KeyProvider",
    # Exceptions
    "AccessDeniedError",
    "CandidateLimitExceeded",
    "CipherError",
    "ConfidentialDataError",
    "ConfigurationError",
    "EncryptionError",
    "InvalidConditionError",
    "KeyUnavailableError",
    "QueryError",
    "RecordNotFoundError",
    "StorageError",
]
