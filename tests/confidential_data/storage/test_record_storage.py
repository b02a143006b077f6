"""
Unit tests for RecordStorage.

These tests verify:
- Encrypted columns only ever hold envelopes
- Callers only ever see plaintext, before and after saving
- Loading, batch loading, deleting
- Access enforcement on writes
- Behavior without a key and with plaintext written outside the hooks
"""

import pytest
from structlog.testing import capture_logs

from confidential_data.lib.access import AccountContext
from confidential_data.lib.exceptions import AccessDeniedError, RecordNotFoundError
from confidential_data.lib.key_provider import KeyProvider
from confidential_data.models.confidential_data import ConfidentialDataRow
from confidential_data.models.record import LinkValue, Record
from confidential_data.storage.record_storage import SAVED_NEW, SAVED_UPDATED, RecordStorage


@pytest.fixture
def alice(storage):
    record = storage.create(
        bundle="login",
        user_id=7,
        name="Alice",
        email="alice@example.com",
        password="hunter2",
        link={"uri": "https://bank.example", "title": "Bank", "options": {"attributes": {"rel": "nofollow"}}},
    )
    storage.save(record)
    return record


def _row(db_session, record_id):
    db_session.expire_all()
    return db_session.get(ConfidentialDataRow, record_id)


# =============================================================================
# Save
# =============================================================================

class TestSave:
    """Test persisting records."""

    def test_create_then_update(self, storage):
        """Test the save result and id assignment."""
        record = storage.create(bundle="login", user_id=7, name="Alice")

        assert storage.save(record) == SAVED_NEW
        assert record.id == 1
        assert storage.save(record) == SAVED_UPDATED
        assert record.id == 1

    def test_timestamps(self, storage):
        """Test created is set once and changed on every save."""
        record = storage.create(user_id=7, name="Alice")
        storage.save(record)
        created, changed = record.created, record.changed

        storage.save(record)

        assert created is not None
        assert record.created == created
        assert record.changed >= changed

    def test_columns_hold_envelopes(self, storage, alice, cipher, db_session):
        """Test encrypted columns never hold plaintext."""
        row = _row(db_session, alice.id)

        for column, plaintext in (
            (row.name, "Alice"),
            (row.email, "alice@example.com"),
            (row.password, "hunter2"),
            (row.link_uri, "https://bank.example"),
            (row.link_title, "Bank"),
        ):
            assert column != plaintext
            assert cipher.looks_like_envelope(column)
            assert cipher.decrypt(column) == plaintext

    def test_plain_columns(self, alice, db_session):
        """Test base fields and link options are stored in plaintext."""
        row = _row(db_session, alice.id)

        assert row.bundle == "login"
        assert row.user_id == 7
        assert row.status == 1
        assert row.uuid == alice.uuid
        assert row.link_options == {"attributes": {"rel": "nofollow"}}

    def test_empty_fields_stored_as_null(self, alice, db_session):
        """Test unset encrypted fields are NULL."""
        row = _row(db_session, alice.id)

        assert row.username is None
        assert row.notes is None

    def test_record_keeps_plaintext(self, alice):
        """Test the saved record still holds plaintext."""
        assert alice.get("name") == "Alice"
        assert alice.get("link.uri") == "https://bank.example"

    def test_update_reencrypts(self, storage, alice, cipher, db_session):
        """Test a changed value gets a fresh envelope."""
        before = _row(db_session, alice.id).name

        alice.set("name", "Alicia")
        storage.save(alice)
        after = _row(db_session, alice.id).name

        assert after != before
        assert cipher.decrypt(after) == "Alicia"

    def test_clearing_a_field(self, storage, alice, db_session):
        """Test setting a field to empty clears the column."""
        alice.set("email", "").set("link", None)
        storage.save(alice)
        row = _row(db_session, alice.id)

        assert row.email is None
        assert row.link_uri is None
        assert row.link_options is None

    def test_update_of_deleted_record(self, storage, alice):
        """Test saving a record whose row is gone."""
        storage.delete([alice])

        with pytest.raises(RecordNotFoundError):
            storage.save(alice)

    def test_logged(self, storage):
        """Test saves are logged without field values."""
        with capture_logs() as logs:
            storage.save(storage.create(bundle="login", user_id=7, name="Alice"))

        saved = [log for log in logs if log["event"] == "record_saved"]
        assert saved == [{"event": "record_saved", "record_id": 1, "bundle": "login", "result": "created", "log_level": "info"}]


class TestSaveWithoutKey:
    """Test saving when no key source yields material."""

    def test_fields_not_stored(self, db_session, settings):
        """Test encrypted fields are stored as NULL, never as plaintext."""
        storage = RecordStorage.with_encryption(db_session, settings, key_provider=KeyProvider([]))
        record = storage.create(bundle="login", user_id=7, name="Alice", link="https://bank.example")

        with capture_logs() as logs:
            assert storage.save(record) == SAVED_NEW

        row = _row(db_session, record.id)
        assert row.name is None
        assert row.link_uri is None
        assert record.get("name") == "Alice"
        assert any(log["event"] == "record_field_not_stored" for log in logs)


# =============================================================================
# Load
# =============================================================================

class TestLoad:
    """Test loading records."""

    def test_load_decrypts(self, storage, alice):
        """Test loaded records hold plaintext."""
        record = storage.load(alice.id)

        assert record is not alice
        assert record.get("name") == "Alice"
        assert record.get("email") == "alice@example.com"
        assert record.get("username") is None
        assert record.get("link") == LinkValue(
            "https://bank.example", "Bank", {"attributes": {"rel": "nofollow"}}
        )
        assert record.uuid == alice.uuid
        assert record.user_id == 7

    def test_load_missing(self, storage):
        """Test loading an unknown id."""
        assert storage.load(99) is None

    def test_load_or_fail(self, storage, alice):
        """Test load_or_fail returns or raises."""
        assert storage.load_or_fail(alice.id).get("name") == "Alice"
        with pytest.raises(RecordNotFoundError):
            storage.load_or_fail(99)

    def test_load_multiple(self, storage):
        """Test batch loading keeps the requested order and skips unknown ids."""
        for name in ("Alice", "Bob", "Carol"):
            storage.save(storage.create(user_id=7, name=name))

        records = storage.load_multiple([3, 99, 1])

        assert list(records) == [3, 1]
        assert records[3].get("name") == "Carol"
        assert records[1].get("name") == "Alice"

    def test_load_multiple_all(self, storage):
        """Test loading every record."""
        for name in ("Alice", "Bob"):
            storage.save(storage.create(user_id=7, name=name))

        assert [r.get("name") for r in storage.load_multiple().values()] == ["Alice", "Bob"]

    def test_load_multiple_empty(self, storage):
        """Test an empty id list loads nothing."""
        assert storage.load_multiple([]) == {}

    def test_plaintext_written_outside_hooks(self, storage, alice, db_session):
        """Test a plaintext value in an encrypted column is returned as is."""
        row = _row(db_session, alice.id)
        row.name = "Legacy Alice"
        db_session.commit()

        with capture_logs() as logs:
            record = storage.load(alice.id)

        assert record.get("name") == "Legacy Alice"
        assert record.get("email") == "alice@example.com"
        assert any(log["event"] == "plaintext_in_encrypted_field" for log in logs)

    def test_without_key(self, storage, alice, db_session, settings):
        """Test loading without a key keeps stored values and does not raise."""
        keyless = RecordStorage.with_encryption(db_session, settings, key_provider=KeyProvider([]))

        record = keyless.load(alice.id)

        assert record.get("name") != "Alice"
        assert record.get("name") == _row(db_session, alice.id).name


# =============================================================================
# Delete
# =============================================================================

class TestDelete:
    """Test deleting records."""

    def test_delete(self, storage, alice):
        """Test deleted records can no longer be loaded."""
        assert storage.delete([alice]) == 1
        assert storage.load(alice.id) is None

    def test_delete_unsaved(self, storage):
        """Test unsaved records are skipped."""
        assert storage.delete([Record()]) == 0


# =============================================================================
# Access
# =============================================================================

class TestWriteAccess:
    """Test access enforcement on writes."""

    def test_owner_may_update(self, storage, alice, owner):
        """Test the owner may update."""
        alice.set("name", "Alicia")

        assert storage.save(alice, account=owner) == SAVED_UPDATED

    def test_other_owner_may_not_update(self, storage, alice, other_owner):
        """Test another owner may not update."""
        with pytest.raises(AccessDeniedError):
            storage.save(alice, account=other_owner)

    def test_other_owner_may_not_delete(self, storage, alice, other_owner):
        """Test another owner may not delete."""
        with pytest.raises(AccessDeniedError):
            storage.delete([alice], account=other_owner)
        assert storage.load(alice.id) is not None

    def test_admin_may_delete(self, storage, alice, admin):
        """Test admins may delete any record."""
        assert storage.delete([alice], account=admin) == 1

    def test_create_permission(self, storage):
        """Test creating requires the create permission."""
        with pytest.raises(AccessDeniedError):
            storage.save(storage.create(user_id=5, name="X"), account=AccountContext(id=5, permissions=frozenset()))

    def test_forged_owner_may_not_update(self, storage, alice, other_owner, db_session):
        """Test the stored owner decides, not the caller's copy of the record."""
        forged = storage.load(alice.id)
        forged.user_id = other_owner.id
        forged.set("name", "Mallory")

        with pytest.raises(AccessDeniedError):
            storage.save(forged, account=other_owner)

        row = _row(db_session, alice.id)
        assert row.user_id == 7
        assert storage.load(alice.id).get("name") == "Alice"

    def test_forged_record_may_not_delete(self, storage, alice, other_owner):
        """Test a hand-built record pointing at another owner's row is refused."""
        with pytest.raises(AccessDeniedError):
            storage.delete([Record(id=alice.id, user_id=other_owner.id)], account=other_owner)
        assert storage.load(alice.id) is not None

    def test_denied_delete_removes_nothing(self, storage, alice, other_owner):
        """Test one refused record keeps the rest of the batch from being deleted."""
        own = storage.create(user_id=other_owner.id, name="Bob")
        storage.save(own)

        with pytest.raises(AccessDeniedError):
            storage.delete([own, alice], account=other_owner)

        assert storage.load(own.id) is not None

    def test_owner_may_not_give_away(self, storage, alice, owner, db_session):
        """Test owners may not change the owner of their record."""
        alice.user_id = 8

        with pytest.raises(AccessDeniedError) as exc_info:
            storage.save(alice, account=owner)

        assert "owner" in str(exc_info.value)
        assert _row(db_session, alice.id).user_id == 7

    def test_admin_may_change_owner(self, storage, alice, admin, db_session):
        """Test admins may reassign a record."""
        alice.user_id = 8

        assert storage.save(alice, account=admin) == SAVED_UPDATED
        assert _row(db_session, alice.id).user_id == 8
