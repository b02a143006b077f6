"""
Record model for Confidential Data.

A Record is the logical, in-memory form of one confidential data entry:
base fields (id, uuid, bundle, owner, status, timestamps) plus content
fields declared by a RecordSchema. Content values are plain Python values
(str for scalar and long-text fields, LinkValue for link fields).

Field values can also be viewed as a closed tagged variant, which is what
the encryption engine dispatches on:

    ScalarValue(value)              single-line string (name, email, ...)
    LongTextValue(value)            multi-line text (notes)
    LinkValue(uri, title, options)  composite link

Usage:
    from confidential_data.models.record import Record

    record = Record(bundle="login", user_id=7)
    record.set("name", "Alice")
    record.set("link", {"uri": "https://bank.example", "title": "Bank"})
    record.get("link.uri")  # "https://bank.example"
"""

from __future__ import annotations

import uuid as uuid_lib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from confidential_data.lib.exceptions import InvalidConditionError

# =============================================================================
# Field Declarations
# =============================================================================


class FieldKind(Enum):
    """Logical type of a field."""

    SCALAR_STRING = "scalar-string"
    LONG_TEXT = "long-text"
    COMPOSITE_LINK = "composite-link"
    INTEGER = "integer"
    TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class FieldDeclaration:
    """Name and logical type of a field."""

    name: str
    kind: FieldKind


# =============================================================================
# Tagged Field Values
# =============================================================================


@dataclass
class ScalarValue:
    """Single-line string value."""

    value: str | None


@dataclass
class LongTextValue:
    """Long text value."""

    value: str | None


@dataclass
class LinkValue:
    """
    Composite link value.

    uri and title carry user content; options holds technical link
    attributes (attributes, query, fragment, ...) and is never encrypted.
    """

    uri: str | None = None
    title: str | None = None
    options: dict[str, Any] = field(default_factory=dict)

    PROPERTIES = ("uri", "title", "options")

    @classmethod
    def coerce(cls, value: Any) -> LinkValue | None:
        """Build a LinkValue from a LinkValue, a mapping, or a bare uri string."""
        if value is None or isinstance(value, LinkValue):
            return value
        if isinstance(value, dict):
            return cls(
                uri=value.get("uri"),
                title=value.get("title"),
                options=dict(value.get("options") or {}),
            )
        if isinstance(value, str):
            return cls(uri=value)
        raise TypeError(f"Cannot build a link from {type(value).__name__}")

    def is_empty(self) -> bool:
        return not self.uri

    def to_dict(self) -> dict[str, Any]:
        return {"uri": self.uri, "title": self.title, "options": dict(self.options)}


FieldValue = ScalarValue | LongTextValue | LinkValue


# =============================================================================
# Schema
# =============================================================================

BASE_FIELDS = ("id", "uuid", "bundle", "user_id", "status", "created", "changed")


class RecordSchema:
    """Content field declarations of a record type."""

    def __init__(self, declarations: list[FieldDeclaration]) -> None:
        self._declarations = {d.name: d for d in declarations}

    def __contains__(self, name: str) -> bool:
        return name in self._declarations

    def __iter__(self):
        return iter(self._declarations.values())

    def get(self, name: str) -> FieldDeclaration | None:
        return self._declarations.get(name)

    def field_names(self) -> tuple[str, ...]:
        return tuple(self._declarations)


DEFAULT_SCHEMA = RecordSchema(
    [
        FieldDeclaration("name", FieldKind.SCALAR_STRING),
        FieldDeclaration("email", FieldKind.SCALAR_STRING),
        FieldDeclaration("username", FieldKind.SCALAR_STRING),
        FieldDeclaration("password", FieldKind.SCALAR_STRING),
        FieldDeclaration("notes", FieldKind.LONG_TEXT),
        FieldDeclaration("link", FieldKind.COMPOSITE_LINK),
    ]
)


# Storage column names accepted in place of the record attribute
FIELD_ALIASES = {"type": "bundle"}


def split_field_path(path: str) -> tuple[str, str | None]:
    """Split "link.uri" into ("link", "uri"); "name" into ("name", None)."""
    base, _, prop = path.partition(".")
    return FIELD_ALIASES.get(base, base), prop or None


# =============================================================================
# Record
# =============================================================================


@dataclass
class Record:
    """
    One confidential data entry.

    Attributes:
        id: Storage identifier (None until first save)
        uuid: Stable external identifier
        bundle: Record type, e.g. "login" or "note"
        user_id: Owner user id
        status: Published flag (1 active, 0 disabled)
        created: Creation timestamp (set by storage)
        changed: Last save timestamp (set by storage)
        values: Content field values keyed by field name
        schema: Content field declarations
        undecrypted: Field paths still holding ciphertext after load
    """

    bundle: str = "default"
    user_id: int | None = None
    status: int = 1
    id: int | None = None
    uuid: str = field(default_factory=lambda: str(uuid_lib.uuid4()))
    created: datetime | None = None
    changed: datetime | None = None
    values: dict[str, Any] = field(default_factory=dict)
    schema: RecordSchema = field(default=DEFAULT_SCHEMA, repr=False, compare=False)
    undecrypted: set[str] = field(default_factory=set, repr=False, compare=False)

    def is_new(self) -> bool:
        return self.id is None

    def is_undecrypted(self, name: str) -> bool:
        """True if the field (or any of its link members) failed to decrypt."""
        base, prop = split_field_path(name)
        if base in self.undecrypted:
            return True
        if prop is not None:
            return f"{base}.{prop}" in self.undecrypted
        return any(path.startswith(f"{base}.") for path in self.undecrypted)

    def has_field(self, name: str) -> bool:
        base, prop = split_field_path(name)
        if base in BASE_FIELDS:
            return prop is None
        declaration = self.schema.get(base)
        if declaration is None:
            return False
        if prop is None:
            return True
        return declaration.kind == FieldKind.COMPOSITE_LINK and prop in LinkValue.PROPERTIES

    def get(self, name: str) -> Any:
        """
        Return a field value. Dotted paths address link properties.

        Raises:
            InvalidConditionError: If the field does not exist
        """
        base, prop = split_field_path(name)
        if base in BASE_FIELDS:
            return getattr(self, base)
        if base not in self.schema:
            raise InvalidConditionError(f"Unknown field '{name}'")

        value = self.values.get(base)
        if prop is None:
            return value
        if not isinstance(value, LinkValue):
            return None
        if prop not in LinkValue.PROPERTIES:
            raise InvalidConditionError(f"Unknown field '{name}'")
        return getattr(value, prop)

    def set(self, name: str, value: Any) -> Record:
        """Set a field value; link fields accept a mapping or a LinkValue."""
        name = FIELD_ALIASES.get(name, name)
        if name in BASE_FIELDS:
            setattr(self, name, value)
            return self
        declaration = self.schema.get(name)
        if declaration is None:
            raise InvalidConditionError(f"Unknown field '{name}'")
        if declaration.kind == FieldKind.COMPOSITE_LINK:
            value = LinkValue.coerce(value)
        self.values[name] = value
        return self

    def is_empty(self, name: str) -> bool:
        value = self.get(name)
        if isinstance(value, LinkValue):
            return value.is_empty()
        return value is None or value == ""

    def field_item(self, name: str) -> FieldValue | None:
        """Return the tagged value of a content field."""
        declaration = self.schema.get(name)
        if declaration is None:
            return None
        value = self.values.get(name)
        if declaration.kind == FieldKind.COMPOSITE_LINK:
            return LinkValue.coerce(value) or LinkValue()
        if declaration.kind == FieldKind.LONG_TEXT:
            return LongTextValue(value)
        return ScalarValue(value)

    def set_item(self, name: str, item: FieldValue) -> None:
        """Write a tagged value back into its field slot."""
        if isinstance(item, LinkValue):
            self.values[name] = item
        else:
            self.values[name] = item.value

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {name: getattr(self, name) for name in BASE_FIELDS}
        for name, value in self.values.items():
            data[name] = value.to_dict() if isinstance(value, LinkValue) else value
        return data


__all__ = [
    "BASE_FIELDS",
    "FIELD_ALIASES",
    "DEFAULT_SCHEMA",
    "FieldDeclaration",
    "FieldKind",
    "FieldValue",
    "LinkValue",
    "LongTextValue",
    "Record",
    "RecordSchema",
    "ScalarValue",
    "split_field_path",
]
