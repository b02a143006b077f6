"""
Models package for Confidential Data.

Usage:
    from confidential_data.models import Record, LinkValue, ConfidentialDataRow
"""

from confidential_data.models.base import Base
from confidential_data.models.confidential_data import ConfidentialDataRow, column_for_field
from confidential_data.models.record import (
    DEFAULT_SCHEMA,
    FieldDeclaration,
    FieldKind,
    FieldValue,
    LinkValue,
    LongTextValue,
    Record,
    RecordSchema,
    ScalarValue,
)

__all__ = [
    # Base
    "Base",
    # Storage model
    "ConfidentialDataRow",
    "column_for_field",
    # Logical model
    "DEFAULT_SCHEMA",
    "FieldDeclaration",
    "FieldKind",
    "FieldValue",
    "LinkValue",
    "LongTextValue",
    "Record",
    "RecordSchema",
    "ScalarValue",
]
