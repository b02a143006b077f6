"""
Confidential Data row model.

Physical storage of Record instances. Encrypted columns hold envelopes
(base64(nonce || ciphertext)) as opaque text and are never indexed; the
indexes cover the non-encrypted columns queries actually filter on
(owner, timestamps).

Data Classification: SENSITIVE
- name, email, username, password, notes: Encrypted (AES-256-GCM)
- link_uri, link_title: Encrypted member-wise
- link_options: Plaintext JSON (technical link attributes)

Column mapping for queries is exposed through column_for_field().
"""

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import InstrumentedAttribute

from confidential_data.lib.exceptions import InvalidConditionError
from confidential_data.models.base import Base


class ConfidentialDataRow(Base):
    """
    One stored confidential data entry.

    Attributes:
        id: Primary key
        uuid: External identifier
        bundle: Record type ("type" column)
        user_id: Owner user id (indexed)
        name, email, username, password, notes: Envelope text
        link_uri, link_title: Envelope text
        link_options: JSON link options (plaintext)
        status: Published flag
        created: Creation timestamp (indexed)
        changed: Last update timestamp (indexed)
    """

    __tablename__ = "user_confidential_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, unique=True)
    bundle = Column("type", String(32), nullable=False)
    user_id = Column(Integer, nullable=True)

    # Encrypted storage
    name = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    username = Column(Text, nullable=True)
    password = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    link_uri = Column(Text, nullable=True)
    link_title = Column(Text, nullable=True)
    link_options = Column(JSON, nullable=True)

    status = Column(Integer, default=1, nullable=False)
    created = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    changed = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    __table_args__ = (
        Index("user_confidential_data_user_id", "user_id"),
        Index("user_confidential_data_created", "created"),
        Index("user_confidential_data_changed", "changed"),
    )

    def __repr__(self) -> str:
        return (
            f"<ConfidentialDataRow(id={self.id}, bundle={self.bundle}, "
            f"user_id={self.user_id}, status={self.status})>"
        )


# Field path -> column. A bare "link" addresses its main property (uri).
_FIELD_COLUMNS: dict[str, InstrumentedAttribute] = {
    "id": ConfidentialDataRow.id,
    "uuid": ConfidentialDataRow.uuid,
    "bundle": ConfidentialDataRow.bundle,
    "type": ConfidentialDataRow.bundle,
    "user_id": ConfidentialDataRow.user_id,
    "status": ConfidentialDataRow.status,
    "created": ConfidentialDataRow.created,
    "changed": ConfidentialDataRow.changed,
    "name": ConfidentialDataRow.name,
    "email": ConfidentialDataRow.email,
    "username": ConfidentialDataRow.username,
    "password": ConfidentialDataRow.password,
    "notes": ConfidentialDataRow.notes,
    "link": ConfidentialDataRow.link_uri,
    "link.uri": ConfidentialDataRow.link_uri,
    "link.title": ConfidentialDataRow.link_title,
}


def column_for_field(field: str) -> InstrumentedAttribute:
    """
    Resolve a query field path to its column.

    Raises:
        InvalidConditionError: If the field has no queryable column
    """
    column = _FIELD_COLUMNS.get(field)
    if column is None:
        raise InvalidConditionError(f"Field '{field}' is not queryable")
    return column


__all__ = ["ConfidentialDataRow", "column_for_field"]
