"""
Encryption settings for Confidential Data.

Holds the key source locations and the query hardening limits. Settings
are a validated pydantic model so that a bad value fails at startup
instead of at the first encrypted save.

Environment variables (read by EncryptionSettings.from_env):
    CONFIDENTIAL_DATA_SECRET_FILE      Path of the mounted secret file
    CONFIDENTIAL_DATA_KEY_ENV          Name of the env var holding key material
    CONFIDENTIAL_DATA_CONFIG_KEY       Key material from application config
    CONFIDENTIAL_DATA_KEYRING_SERVICE  Keyring service name (optional source)
    CONFIDENTIAL_DATA_MAX_CANDIDATES   Cap on decrypt-then-filter candidates

Usage:
    from confidential_data.lib.config import EncryptionSettings

    settings = EncryptionSettings.from_env()
"""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from confidential_data.lib.exceptions import ConfigurationError

DEFAULT_SECRET_FILE = "/run/secrets/user_confidential_data_key"
DEFAULT_KEY_ENV_VAR = "USER_CONFIDENTIAL_DATA_KEY"
DEFAULT_MAX_CANDIDATES = 10_000

# Same minimum the admin settings form enforced for a configured key
MIN_CONFIG_KEY_LENGTH = 32


class EncryptionSettings(BaseModel):
    """
    Settings for key resolution and encrypted-field queries.

    Attributes:
        secret_file: Mounted secret file, highest priority key source.
        key_env_var: Environment variable name, second priority key source.
        encryption_key: Key material from application configuration, third
            priority key source. Must be at least 32 characters when set.
        keyring_service: If set, the OS keyring is consulted as a last
            resort (lowest priority, never outranks the three sources above).
        max_candidates: Upper bound on the candidate set the query engine
            will decrypt and filter in-process.
    """

    model_config = ConfigDict(frozen=True)

    secret_file: str = DEFAULT_SECRET_FILE
    key_env_var: str = DEFAULT_KEY_ENV_VAR
    encryption_key: str | None = Field(default=None, repr=False)
    keyring_service: str | None = None
    max_candidates: int = Field(default=DEFAULT_MAX_CANDIDATES, ge=1)

    @field_validator("encryption_key")
    @classmethod
    def _check_key_length(cls, value: str | None) -> str | None:
        if value is None or value.strip() == "":
            return None
        if len(value.strip()) < MIN_CONFIG_KEY_LENGTH:
            raise ValueError(
                f"encryption_key must be at least {MIN_CONFIG_KEY_LENGTH} characters long"
            )
        return value

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> EncryptionSettings:
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            Validated EncryptionSettings

        Raises:
            ConfigurationError: If a value is present but invalid
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        if env.get("CONFIDENTIAL_DATA_SECRET_FILE"):
            values["secret_file"] = env["CONFIDENTIAL_DATA_SECRET_FILE"]
        if env.get("CONFIDENTIAL_DATA_KEY_ENV"):
            values["key_env_var"] = env["CONFIDENTIAL_DATA_KEY_ENV"]
        if env.get("CONFIDENTIAL_DATA_CONFIG_KEY"):
            values["encryption_key"] = env["CONFIDENTIAL_DATA_CONFIG_KEY"]
        if env.get("CONFIDENTIAL_DATA_KEYRING_SERVICE"):
            values["keyring_service"] = env["CONFIDENTIAL_DATA_KEYRING_SERVICE"]
        if env.get("CONFIDENTIAL_DATA_MAX_CANDIDATES"):
            values["max_candidates"] = env["CONFIDENTIAL_DATA_MAX_CANDIDATES"]

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid encryption settings: {e}") from e


__all__ = [
    "DEFAULT_KEY_ENV_VAR",
    "DEFAULT_MAX_CANDIDATES",
    "DEFAULT_SECRET_FILE",
    "EncryptionSettings",
    "MIN_CONFIG_KEY_LENGTH",
]
