"""
Structured logging configuration for Confidential Data.

Configures structlog to work alongside stdlib logging so that both
`logging.getLogger()` and `structlog.get_logger()` produce consistent,
structured JSON output in production and human-readable output in dev.

Key material and field contents must never reach a log line. Event keys
listed in SENSITIVE_KEYS are masked before rendering.

Usage:
    from confidential_data.lib.logging import setup_logging

    setup_logging()  # Call once at application startup
"""

import logging
import os
import sys

import structlog

REDACTED = "[REDACTED]"

SENSITIVE_KEYS = frozenset(
    {
        "key",
        "encryption_key",
        "key_material",
        "envelope",
        "ciphertext",
        "plaintext",
        "password",
        "value",
    }
)


def redact_sensitive(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Mask values logged under a sensitive key."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and stdlib logging for the application.

    In development (CONFIDENTIAL_DATA_DEV_MODE=1): human-readable console output.
    In production: JSON-formatted structured logs.
    """
    dev_mode = os.environ.get("CONFIDENTIAL_DATA_DEV_MODE") == "1"
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if dev_mode:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    # SQL echo is configured on the engine, keep the logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
