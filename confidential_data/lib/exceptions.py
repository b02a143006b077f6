"""
Exception hierarchy for Confidential Data.

Provides structured exception types for all subsystems:
- Configuration, key resolution, field encryption
- Query execution, record storage, access control

All exceptions inherit from ConfidentialDataError, enabling a
catch-all for library errors while keeping the ability to catch
specific error types.

Note:
    The encryption and query paths degrade gracefully (None / False)
    where a single bad field must not fail a whole request. These
    exceptions are raised by the strict variants and by structural
    failures (bad configuration, unknown records, query limits).
"""

from __future__ import annotations


class ConfidentialDataError(Exception):
    """Base exception for all Confidential Data errors."""


class ConfigurationError(ConfidentialDataError):
    """Invalid settings values or environment configuration."""


class EncryptionError(ConfidentialDataError):
    """Encryption or decryption failures."""


class KeyUnavailableError(EncryptionError):
    """No key source yielded key material."""


class CipherError(EncryptionError):
    """Malformed envelope, authentication failure, or cipher error."""


class QueryError(ConfidentialDataError):
    """Query construction or execution failures."""


class InvalidConditionError(QueryError):
    """A condition references an unknown field or is malformed."""


class CandidateLimitExceeded(QueryError):
    """The clean query returned more candidates than the configured cap."""

    def __init__(self, candidates: int, limit: int) -> None:
        super().__init__(
            f"Encrypted-field query matched {candidates} candidates, "
            f"limit is {limit}. Add a selective non-encrypted condition."
        )
        self.candidates = candidates
        self.limit = limit


class StorageError(ConfidentialDataError):
    """Record storage failures raised by this library."""


class RecordNotFoundError(StorageError):
    """The requested record id does not exist."""


class AccessDeniedError(ConfidentialDataError):
    """The account is not allowed to perform the operation."""
