"""
Encrypted Field Set for Confidential Data.

Membership is decided by field name alone: every record of every bundle
that has a field called "email" stores it encrypted.

Link fields are encrypted member-wise: uri and title each get their own
envelope, options stay plaintext because they carry only technical
attributes the storage layer needs to read.
"""

from __future__ import annotations

from confidential_data.models.record import split_field_path

ENCRYPTED_FIELDS: tuple[str, ...] = (
    "name",
    "email",
    "username",
    "password",
    "notes",
    "link",
)

# Members encrypted per composite field; scalar fields encrypt "value"
ENCRYPTED_PROPERTIES: dict[str, tuple[str, ...]] = {
    "link": ("uri", "title"),
}


class EncryptedFieldRegistry:
    """Lookup over the Encrypted Field Set."""

    def __init__(
        self,
        fields: tuple[str, ...] = ENCRYPTED_FIELDS,
        properties: dict[str, tuple[str, ...]] | None = None,
    ) -> None:
        self._fields = tuple(fields)
        self._properties = dict(ENCRYPTED_PROPERTIES if properties is None else properties)

    def encrypted_field_names(self) -> tuple[str, ...]:
        """Encrypted field names, in declaration order."""
        return self._fields

    def encrypted_properties(self, name: str) -> tuple[str, ...]:
        """Members encrypted for a field ("value" for scalar fields)."""
        if name not in self._fields:
            return ()
        return self._properties.get(name, ("value",))

    def is_encrypted_field(self, name: str) -> bool:
        """
        Check if a field (or field path) is stored encrypted.

        "link", "link.uri" and "link.title" are encrypted, "link.options"
        is not.
        """
        base, prop = split_field_path(name)
        if base not in self._fields:
            return False
        if prop is None:
            return True
        return prop in self.encrypted_properties(base)


__all__ = ["ENCRYPTED_FIELDS", "ENCRYPTED_PROPERTIES", "EncryptedFieldRegistry"]
