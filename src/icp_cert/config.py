"""
Configuration — typed, validated settings loaded from environment/.env.

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated through env_nested_delimiter="__", so ICP_CERT_TLS__TIMEOUT_SECONDS
maps to tls.timeout_seconds, ICP_CERT_STORE__WINDOWS_STORE_NAME to
store.windows_store_name, etc.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root .env, independent of the working directory.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class TlsSettings(BaseModel):
    """Trust anchors and timeouts for mutual-TLS clients."""

    ca_bundle_path: Path | None = Field(
        default=None,
        description="CA bundle used to verify servers (certifi's bundle when unset)",
    )
    timeout_seconds: int = Field(default=60, ge=1)


class StoreSettings(BaseModel):
    """
    Operating-system certificate stores.

    default_store selects the store searched by tax ID; when unset it follows
    the running platform (keychain on macOS, Windows store elsewhere).
    """

    windows_store_name: str = Field(default="MY", min_length=1)
    mac_keychain: str | None = Field(
        default=None,
        description="Keychain file to read (user's default search list when unset)",
    )
    default_store: Literal["windows", "mac"] | None = None


class AppSettings(BaseSettings):
    """
    Root application settings.

    Load order (highest priority first):
      1. Environment variables (ICP_CERT_ prefix)
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="ICP_CERT_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    tls: TlsSettings = Field(default_factory=TlsSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value!r}")
        return level
