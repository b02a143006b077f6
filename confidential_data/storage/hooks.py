"""
Storage lifecycle hooks.

RecordStorage calls every registered hook right before a record is
written (before_persist) and right after a batch of records is loaded
(after_load). EncryptionHooks plugs the record encryption engine into
those two points.
"""

from __future__ import annotations

from typing import Any, Protocol

from confidential_data.lib.entity_encryption import RecordEncryptionEngine
from confidential_data.models.record import Record


class StorageHooks(Protocol):
    """Lifecycle callbacks a storage adapter invokes."""

    def before_persist(self, record: Record) -> dict[str, Any]:
        """
        Return stored values overriding the record's own values.

        Keys are content field names. The record itself must not be
        modified: callers keep working with its logical values.
        """
        ...

    def after_load(self, records: list[Record]) -> None:
        """Transform freshly loaded records in place, every one of them."""
        ...


class EncryptionHooks:
    """Encrypts before persisting and decrypts after loading."""

    def __init__(self, engine: RecordEncryptionEngine) -> None:
        self.engine = engine

    def before_persist(self, record: Record) -> dict[str, Any]:
        patch = self.engine.encrypt_record(record)
        # Encrypted fields missing from the patch (empty, or encryption
        # failed) are stored as absent, never as plaintext.
        stored: dict[str, Any] = {}
        for field_name in self.engine.registry.encrypted_field_names():
            if field_name in record.schema:
                stored[field_name] = patch.get(field_name)
        return stored

    def after_load(self, records: list[Record]) -> None:
        self.engine.decrypt_records(records)


__all__ = ["EncryptionHooks", "StorageHooks"]
