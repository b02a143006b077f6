"""
Shared test fixtures for Confidential Data.

This module provides common fixtures used across all test modules:
- Database session (in-memory SQLite)
- KeyProvider / FieldCipher with a deterministic test key
- RecordEncryptionEngine and RecordStorage wired to the test cipher
- Account contexts (owner, other owner, administrator)

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from confidential_data.lib.access import AccountContext, Permission
from confidential_data.lib.config import EncryptionSettings
from confidential_data.lib.encryption import FieldCipher
from confidential_data.lib.entity_encryption import RecordEncryptionEngine
from confidential_data.lib.field_registry import EncryptedFieldRegistry
from confidential_data.lib.key_provider import ConfigKeySource, KeyProvider
from confidential_data.models.base import Base
from confidential_data.models.confidential_data import ConfidentialDataRow  # noqa: F401
from confidential_data.storage.hooks import EncryptionHooks
from confidential_data.storage.record_storage import RecordStorage

TEST_KEY = "test-master-key-for-confidential-data!!"


# ---------------------------------------------------------------------------
# 1. db_session -- in-memory SQLite session for unit tests
# ---------------------------------------------------------------------------

@pytest.fixture()
def db_session():
    """
    Provide a SQLAlchemy session backed by an in-memory SQLite database.

    A fresh database is created for every test that requests this fixture.
    """
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    TestingSession = sessionmaker(bind=engine)
    session = TestingSession()

    yield session

    session.close()
    engine.dispose()


# ---------------------------------------------------------------------------
# 2. Encryption -- provider, cipher and engine with a fixed test key
# ---------------------------------------------------------------------------

@pytest.fixture()
def key_provider():
    """KeyProvider whose only source is a fixed configured key."""
    return KeyProvider([ConfigKeySource(TEST_KEY)])


@pytest.fixture()
def cipher(key_provider):
    return FieldCipher(key_provider)


@pytest.fixture()
def keyless_cipher():
    """FieldCipher with no key source at all."""
    return FieldCipher(KeyProvider([]))


@pytest.fixture()
def registry():
    return EncryptedFieldRegistry()


@pytest.fixture()
def engine(cipher, registry):
    return RecordEncryptionEngine(cipher, registry)


# ---------------------------------------------------------------------------
# 3. storage -- RecordStorage with the encryption hooks
# ---------------------------------------------------------------------------

@pytest.fixture()
def settings():
    return EncryptionSettings(secret_file="/nonexistent/confidential-data-key", max_candidates=100)


@pytest.fixture()
def storage(db_session, engine, registry, settings):
    return RecordStorage(
        db_session,
        hooks=[EncryptionHooks(engine)],
        registry=registry,
        settings=settings,
    )


# ---------------------------------------------------------------------------
# 4. Accounts
# ---------------------------------------------------------------------------

@pytest.fixture()
def owner():
    return AccountContext(id=7)


@pytest.fixture()
def other_owner():
    return AccountContext(id=8)


@pytest.fixture()
def admin():
    return AccountContext(id=42, permissions=frozenset({Permission.ADMINISTER}))
