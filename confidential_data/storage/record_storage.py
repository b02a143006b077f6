"""
Record storage for Confidential Data.

Binds Records to the user_confidential_data table through a SQLAlchemy
session and runs the registered StorageHooks at the two lifecycle points:

- save():  before_persist(record) for the stored values of the write
- load*(): after_load(records) for every record of the loaded batch

With EncryptionHooks registered, encrypted columns only ever receive
envelopes and callers only ever see plaintext.

Usage:
    storage = RecordStorage.with_encryption(session, settings)
    record = storage.create(bundle="login", user_id=7, name="Alice")
    storage.save(record)

    ids = storage.get_query().condition("name", "alice").access_check(False).execute()
    records = storage.load_multiple(ids)
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session as DbSession

from confidential_data.lib.access import (
    AccountContext,
    Operation,
    check_create_access,
    require_access,
)
from confidential_data.lib.config import EncryptionSettings
from confidential_data.lib.encryption import FieldCipher
from confidential_data.lib.entity_encryption import RecordEncryptionEngine
from confidential_data.lib.exceptions import AccessDeniedError, RecordNotFoundError, StorageError
from confidential_data.lib.field_registry import EncryptedFieldRegistry
from confidential_data.lib.key_provider import KeyProvider
from confidential_data.models.confidential_data import ConfidentialDataRow
from confidential_data.models.record import (
    DEFAULT_SCHEMA,
    FieldKind,
    LinkValue,
    Record,
    RecordSchema,
)
from confidential_data.query.encrypted import EncryptedAwareQuery
from confidential_data.query.sql import SqlRecordQuery
from confidential_data.storage.hooks import EncryptionHooks, StorageHooks

logger = structlog.get_logger(__name__)

SAVED_NEW = "created"
SAVED_UPDATED = "updated"


class RecordStorage:
    """
    Create, load, save and query records.

    Args:
        session: SQLAlchemy session
        hooks: Lifecycle hooks, run in order
        registry: Encrypted Field Set, used by the query engine
        schema: Content field declarations of loaded records
        settings: Settings (candidate cap)
    """

    def __init__(
        self,
        session: DbSession,
        hooks: Iterable[StorageHooks] = (),
        registry: EncryptedFieldRegistry | None = None,
        schema: RecordSchema = DEFAULT_SCHEMA,
        settings: EncryptionSettings | None = None,
    ) -> None:
        self._session = session
        self._hooks = list(hooks)
        self.registry = registry or EncryptedFieldRegistry()
        self.schema = schema
        self.settings = settings or EncryptionSettings()

    @classmethod
    def with_encryption(
        cls,
        session: DbSession,
        settings: EncryptionSettings | None = None,
        key_provider: KeyProvider | None = None,
    ) -> RecordStorage:
        """Build a storage with the encryption hooks wired in."""
        settings = settings or EncryptionSettings()
        registry = EncryptedFieldRegistry()
        cipher = FieldCipher(key_provider or KeyProvider.from_settings(settings))
        engine = RecordEncryptionEngine(cipher, registry)
        return cls(
            session,
            hooks=[EncryptionHooks(engine)],
            registry=registry,
            settings=settings,
        )

    # -------------------------------------------------------------------------
    # Create / save / delete
    # -------------------------------------------------------------------------

    def create(self, **values: Any) -> Record:
        """Build a new, unsaved record from field values."""
        record = Record(schema=self.schema)
        for name, value in values.items():
            record.set(name, value)
        return record

    def save(self, record: Record, account: AccountContext | None = None) -> str:
        """
        Persist a record.

        The record keeps its plaintext values; only the written row holds
        the stored (encrypted) form.

        Args:
            record: Record to save
            account: If given, create access is checked, or update access
                against the stored owner; only owner-bypassing accounts may
                change the owner

        Returns:
            "created" or "updated"

        Raises:
            AccessDeniedError: If the account may not write the record
            RecordNotFoundError: If an existing record's row has vanished
        """
        now = datetime.now(UTC)
        is_new = record.is_new()
        if is_new:
            if account is not None and not check_create_access(account):
                raise AccessDeniedError(f"Account {account.id} may not create records")
            row = ConfidentialDataRow(uuid=record.uuid)
        else:
            row = self._session.get(ConfidentialDataRow, record.id)
            if row is None:
                raise RecordNotFoundError(f"Record {record.id} does not exist")
            if account is not None:
                self._require_stored_access(row, Operation.UPDATE, account)
                if record.user_id != row.user_id and not account.bypasses_owner_checks():
                    logger.warning(
                        "record_owner_change_denied",
                        record_id=record.id,
                        account_id=account.id,
                    )
                    raise AccessDeniedError(
                        f"Account {account.id} may not change the owner of record {record.id}"
                    )
        record.created = record.created or row.created or now
        record.changed = now

        stored = self._plain_values(record)
        for hook in self._hooks:
            stored.update(hook.before_persist(record))

        self._write_row(row, record, stored)
        if is_new:
            self._session.add(row)
        self._session.commit()

        record.id = row.id
        logger.info(
            "record_saved",
            record_id=record.id,
            bundle=record.bundle,
            result=SAVED_NEW if is_new else SAVED_UPDATED,
        )
        return SAVED_NEW if is_new else SAVED_UPDATED

    def delete(self, records: Iterable[Record], account: AccountContext | None = None) -> int:
        """
        Delete records; returns the number of rows removed.

        Access is checked against the stored owners of all rows before any
        row is deleted.
        """
        rows = []
        for record in records:
            if record.is_new():
                continue
            row = self._session.get(ConfidentialDataRow, record.id)
            if row is None:
                continue
            if account is not None:
                self._require_stored_access(row, Operation.DELETE, account)
            rows.append(row)

        for row in rows:
            self._session.delete(row)
        self._session.commit()
        logger.info("records_deleted", count=len(rows))
        return len(rows)

    def _require_stored_access(self, row: ConfidentialDataRow, operation: Operation, account: AccountContext) -> None:
        # Ownership comes from the stored row, not from the caller's copy
        stored = Record(id=row.id, bundle=row.bundle, user_id=row.user_id, schema=self.schema)
        require_access(stored, operation, account)

    def _plain_values(self, record: Record) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for declaration in self.schema:
            value = record.values.get(declaration.name)
            if isinstance(value, LinkValue):
                value = value.to_dict()
            values[declaration.name] = value
        return values

    def _write_row(self, row: ConfidentialDataRow, record: Record, stored: dict[str, Any]) -> None:
        row.bundle = record.bundle
        row.user_id = record.user_id
        row.status = record.status
        row.created = record.created
        row.changed = record.changed

        for declaration in self.schema:
            value = stored.get(declaration.name)
            if declaration.kind == FieldKind.COMPOSITE_LINK:
                link = LinkValue.coerce(value)
                row.link_uri = link.uri if link else None
                row.link_title = link.title if link else None
                row.link_options = link.options if link else None
            elif hasattr(ConfidentialDataRow, declaration.name):
                setattr(row, declaration.name, None if value == "" else value)
            else:
                raise StorageError(f"Field '{declaration.name}' has no storage column")

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    def load(self, record_id: int) -> Record | None:
        """Load one record, or None if it does not exist."""
        return self.load_multiple([record_id]).get(record_id)

    def load_or_fail(self, record_id: int) -> Record:
        """
        Load one record.

        Raises:
            RecordNotFoundError: If it does not exist
        """
        record = self.load(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record {record_id} does not exist")
        return record

    def load_multiple(self, ids: Iterable[int] | None = None) -> dict[int, Record]:
        """
        Load records by id (all records when ids is None).

        Unknown ids are skipped. Every loaded record passes through the
        after_load hooks before it is returned.

        Returns:
            Mapping of id to record, in the order of `ids`
        """
        stmt = select(ConfidentialDataRow)
        wanted: list[int] | None = None
        if ids is not None:
            wanted = list(ids)
            if not wanted:
                return {}
            stmt = stmt.where(ConfidentialDataRow.id.in_(wanted))
        rows = self._session.scalars(stmt.order_by(ConfidentialDataRow.id)).all()

        by_id = {row.id: self._row_to_record(row) for row in rows}
        records = list(by_id.values())
        for hook in self._hooks:
            hook.after_load(records)

        if wanted is None:
            return by_id
        return {record_id: by_id[record_id] for record_id in wanted if record_id in by_id}

    def _row_to_record(self, row: ConfidentialDataRow) -> Record:
        record = Record(
            id=row.id,
            uuid=row.uuid,
            bundle=row.bundle,
            user_id=row.user_id,
            status=row.status,
            created=row.created,
            changed=row.changed,
            schema=self.schema,
        )
        for declaration in self.schema:
            if declaration.kind == FieldKind.COMPOSITE_LINK:
                if row.link_uri is None and row.link_title is None:
                    continue
                record.values[declaration.name] = LinkValue(
                    uri=row.link_uri,
                    title=row.link_title,
                    options=dict(row.link_options or {}),
                )
            else:
                record.values[declaration.name] = getattr(row, declaration.name, None)
        return record

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_query(self, account: AccountContext | None = None, conjunction: str = "AND") -> EncryptedAwareQuery:
        """Query supporting conditions on encrypted fields."""
        return EncryptedAwareQuery(
            self._session,
            storage=self,
            registry=self.registry,
            account=account,
            max_candidates=self.settings.max_candidates,
            conjunction=conjunction,
        )

    def get_native_query(self, account: AccountContext | None = None, conjunction: str = "AND") -> SqlRecordQuery:
        """Query evaluated entirely in the database (stored values only)."""
        return SqlRecordQuery(self._session, account=account, conjunction=conjunction)


__all__ = ["RecordStorage", "SAVED_NEW", "SAVED_UPDATED"]
