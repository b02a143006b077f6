"""
Confidential Data -- Encryption Status Entry Point.

Resolves the encryption key from the configured sources and prints the
encryption status as JSON. Exits 0 if a key is available, 1 if not (2 if
the settings themselves are invalid), so the script doubles as a
deployment readiness check.

Usage:
    python main.py
    CONFIDENTIAL_DATA_DEV_MODE=1 python main.py   # Human-readable logs
"""

from __future__ import annotations

import json
import sys

import structlog

from confidential_data.lib.config import EncryptionSettings
from confidential_data.lib.encryption import FieldCipher
from confidential_data.lib.entity_encryption import RecordEncryptionEngine
from confidential_data.lib.exceptions import ConfigurationError
from confidential_data.lib.key_provider import KeyProvider
from confidential_data.lib.logging import setup_logging

logger = structlog.get_logger(__name__)


def main() -> int:
    setup_logging()

    try:
        settings = EncryptionSettings.from_env()
    except ConfigurationError as e:
        logger.error("invalid_settings", error=str(e))
        return 2

    engine = RecordEncryptionEngine(FieldCipher(KeyProvider.from_settings(settings)))
    status = engine.encryption_status()
    print(json.dumps(status, indent=2))
    return 0 if status["key_available"] else 1


if __name__ == "__main__":
    sys.exit(main())
