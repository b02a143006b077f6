"""
Record encryption engine for Confidential Data.

Walks the Encrypted Field Set over a Record and applies the FieldCipher
according to each field's tagged value:

- ScalarValue / LongTextValue: the string is encrypted into one envelope
- LinkValue: uri and title are encrypted separately, options stay plaintext

encrypt_record() runs right before a record is persisted and returns the
patch of stored values; the in-memory record keeps its plaintext.
decrypt_record() runs right after a record is loaded and replaces
envelopes with plaintext in place.

Failure policy:
- Encryption of a field fails: the field is left out of the patch (stored
  as absent, never as plaintext), logged at error, the save continues.
- Decryption of a field fails: the field keeps its stored value, logged at
  error, the remaining fields and records are still decrypted.
- A stored value that is not envelope-shaped (plaintext written by a path
  that bypassed the storage hooks) is left untouched and logged at warning.
"""

from __future__ import annotations

from typing import Any

import structlog

from confidential_data.lib.encryption import FieldCipher
from confidential_data.lib.field_registry import EncryptedFieldRegistry
from confidential_data.models.record import (
    LinkValue,
    LongTextValue,
    Record,
    ScalarValue,
)

logger = structlog.get_logger(__name__)


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


class RecordEncryptionEngine:
    """
    Encrypts and decrypts the encrypted fields of records.

    Args:
        cipher: Field cipher used for every value
        registry: Encrypted Field Set
    """

    def __init__(
        self,
        cipher: FieldCipher,
        registry: EncryptedFieldRegistry | None = None,
    ) -> None:
        self.cipher = cipher
        self.registry = registry or EncryptedFieldRegistry()

    # -------------------------------------------------------------------------
    # Encryption
    # -------------------------------------------------------------------------

    def encrypt_record(self, record: Record) -> dict[str, Any]:
        """
        Build the stored values for all encrypted fields of a record.

        Args:
            record: Record in plaintext form (not modified)

        Returns:
            Patch mapping field name to stored value. Scalar fields map to an
            envelope string, link fields to {"uri", "title", "options"} with
            encrypted members. Empty fields and fields whose encryption
            failed are absent.
        """
        patch: dict[str, Any] = {}

        for field_name in self.registry.encrypted_field_names():
            if field_name not in record.schema or record.is_empty(field_name):
                continue

            item = record.field_item(field_name)
            if isinstance(item, LinkValue):
                stored_link = self._encrypt_link(record, field_name, item)
                if stored_link is not None:
                    patch[field_name] = stored_link
            elif isinstance(item, (ScalarValue, LongTextValue)):
                envelope = self.cipher.encrypt(item.value)
                if envelope is None:
                    self._log_encrypt_failure(record, field_name)
                    continue
                patch[field_name] = envelope

        return patch

    def _encrypt_link(
        self, record: Record, field_name: str, link: LinkValue
    ) -> dict[str, Any] | None:
        stored: dict[str, Any] = {"options": dict(link.options)}
        for prop in self.registry.encrypted_properties(field_name):
            value = getattr(link, prop)
            if _is_blank(value):
                stored[prop] = value
                continue
            envelope = self.cipher.encrypt(value)
            if envelope is None:
                self._log_encrypt_failure(record, f"{field_name}.{prop}")
                continue
            stored[prop] = envelope

        # uri is the main property; without it the link is not stored
        if "uri" not in stored:
            return None
        return stored

    @staticmethod
    def _log_encrypt_failure(record: Record, field_path: str) -> None:
        logger.error(
            "record_field_not_stored",
            field=field_path,
            record_id=record.id,
            reason="encryption_failed",
        )

    # -------------------------------------------------------------------------
    # Decryption
    # -------------------------------------------------------------------------

    def decrypt_record(self, record: Record) -> list[str]:
        """
        Decrypt all encrypted fields of a loaded record in place.

        Args:
            record: Record holding stored (envelope) values

        Returns:
            Field paths that could not be decrypted and still hold their
            stored value
        """
        failed: list[str] = []
        record.undecrypted.clear()

        for field_name in self.registry.encrypted_field_names():
            if field_name not in record.schema or record.is_empty(field_name):
                continue

            item = record.field_item(field_name)
            if isinstance(item, LinkValue):
                for prop in self.registry.encrypted_properties(field_name):
                    stored = getattr(item, prop)
                    if _is_blank(stored):
                        continue
                    ok, value = self._decrypt_value(record, f"{field_name}.{prop}", stored)
                    if ok:
                        setattr(item, prop, value)
                    else:
                        failed.append(f"{field_name}.{prop}")
                record.set_item(field_name, item)
            elif isinstance(item, (ScalarValue, LongTextValue)):
                ok, value = self._decrypt_value(record, field_name, item.value)
                if ok:
                    item.value = value
                    record.set_item(field_name, item)
                else:
                    failed.append(field_name)

        return failed

    def _decrypt_value(self, record: Record, field_path: str, stored: Any) -> tuple[bool, Any]:
        if not self.cipher.looks_like_envelope(stored):
            logger.warning(
                "plaintext_in_encrypted_field",
                field=field_path,
                record_id=record.id,
            )
            return False, stored

        value = self.cipher.decrypt(stored)
        if value is None:
            logger.error(
                "record_field_not_decrypted",
                field=field_path,
                record_id=record.id,
            )
            record.undecrypted.add(field_path)
            return False, stored
        return True, value

    def decrypt_records(self, records: list[Record]) -> dict[int | None, list[str]]:
        """
        Decrypt every record of a load batch.

        One record failing never stops its siblings from being decrypted.

        Returns:
            Mapping of record id to failed field paths, for records with failures
        """
        failures: dict[int | None, list[str]] = {}
        for record in records:
            try:
                failed = self.decrypt_record(record)
            except Exception as e:
                logger.error(
                    "record_decryption_failed",
                    record_id=record.id,
                    error=type(e).__name__,
                    exc_info=True,
                )
                record.undecrypted.update(
                    name for name in self.registry.encrypted_field_names() if name in record.schema
                )
                failures[record.id] = list(self.registry.encrypted_field_names())
                continue
            if failed:
                failures[record.id] = failed
        return failures

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def is_encryption_ready(self) -> bool:
        return self.cipher.is_ready()

    def encryption_status(self) -> dict[str, Any]:
        """
        Report whether encryption is configured.

        Returns:
            {"ready", "key_available", "key_source", "algorithm", "encrypted_fields"}
        """
        ready = self.cipher.is_ready()
        return {
            "ready": ready,
            "key_available": ready,
            "key_source": self.cipher.key_source(),
            "algorithm": self.cipher.ALGORITHM,
            "encrypted_fields": list(self.registry.encrypted_field_names()),
        }


__all__ = ["RecordEncryptionEngine"]
