# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.settings",
#   "purpose": "Pydantic v2 settings for the relay client.",
#   "sections": [
#     {
#       "id": "loglevel",
#       "name": "LogLevel",
#       "anchor": "class-loglevel",
#       "kind": "class"
#     },
#     {
#       "id": "logformat",
#       "name": "LogFormat",
#       "anchor": "class-logformat",
#       "kind": "class"
#     },
#     {
#       "id": "relaysettings",
#       "name": "RelaySettings",
#       "anchor": "class-relaysettings",
#       "kind": "class"
#     },
#     {
#       "id": "get-settings",
#       "name": "get_settings",
#       "anchor": "function-get-settings",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pydantic v2 settings for the relay client.

Every field can be overridden through an ``HTTPRELAY_`` prefixed environment
variable (``HTTPRELAY_DEFAULT_RETRIES=2``) or by passing a
:class:`RelaySettings` instance to :class:`HttpRelay.client.HttpRelayClient`.
Timeouts are expressed in seconds, the progress interval in milliseconds.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ============================================================================
# Enums for validated choices
# ============================================================================


class LogLevel(str, Enum):
    """Supported logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Supported log output formats."""

    CONSOLE = "console"
    JSON = "json"


# ============================================================================
# Relay configuration
# ============================================================================


class RelaySettings(BaseSettings):
    """Runtime configuration shared by every request family."""

    model_config = SettingsConfigDict(
        env_prefix="HTTPRELAY_",
        case_sensitive=False,
        extra="ignore",
    )

    default_retries: int = Field(5, description="Retries granted when callers omit max_retries", ge=0)
    default_timeout_s: float = Field(
        10.0, description="Connect and read timeout for GET/POST/download", gt=0
    )
    request_connect_timeout_s: float = Field(
        3.0, description="Connect timeout for execute_request without explicit timeout", gt=0
    )
    request_read_timeout_s: float = Field(
        5.0, description="Read timeout for execute_request without explicit timeout", gt=0
    )
    upload_read_timeout_s: float = Field(
        60.0, description="Read timeout while waiting for an upload response", gt=0
    )
    chunk_size: int = Field(4096, description="Upload/download buffer size in bytes", ge=1)
    progress_interval_ms: int = Field(
        100, description="Minimum spacing between progress events", ge=0
    )
    retry_backoff_s: float = Field(
        0.0, description="Exponential backoff multiplier between attempts (0 = none)", ge=0
    )
    max_upload_bytes: int = Field(
        2**31 - 1, description="Largest file accepted for upload", ge=0
    )
    debug_requests: bool = Field(False, description="Log request/response payloads at DEBUG")
    log_level: LogLevel = Field(LogLevel.INFO, description="Logging level for HttpRelay loggers")
    log_format: LogFormat = Field(LogFormat.CONSOLE, description="Pretty console or structured JSON")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        """Accept lowercase level names from the environment."""
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def progress_interval_s(self) -> float:
        return self.progress_interval_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> RelaySettings:
    """Return the process-wide settings loaded from the environment."""
    return RelaySettings()


def reset_settings_cache() -> None:
    get_settings.cache_clear()


__all__ = [
    "LogFormat",
    "LogLevel",
    "RelaySettings",
    "get_settings",
    "reset_settings_cache",
]
