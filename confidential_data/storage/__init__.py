"""Storage package for Confidential Data."""

from confidential_data.storage.hooks import EncryptionHooks, StorageHooks
from confidential_data.storage.record_storage import SAVED_NEW, SAVED_UPDATED, RecordStorage

__all__ = [
    "EncryptionHooks",
    "RecordStorage",
    "SAVED_NEW",
    "SAVED_UPDATED",
    "StorageHooks",
]
