from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_VENDOR_URL_ENV = "VENDOR_BASE_URL"
_VENDOR_TIMEOUT_ENV = "VENDOR_TIMEOUT_SECONDS"
_POLL_INTERVAL_ENV = "POLL_INTERVAL_SECONDS"
_RETENTION_DAYS_ENV = "RETENTION_DAYS"
_CREDENTIAL_PATH_ENV = "CREDENTIAL_PATH"
_READINGS_PATH_ENV = "READINGS_PATH"
_SINK_URL_ENV = "READING_SINK_URL"
_REFRESH_URL_ENV = "SESSION_REFRESH_URL"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    vendor_base_url: str
    vendor_timeout: float
    poll_interval: float
    retention_days: int
    credential_path: Optional[str]
    readings_path: Optional[str]
    reading_sink_url: Optional[str]
    session_refresh_url: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        vendor_base_url=_read_str_env(_VENDOR_URL_ENV, "https://home.nest.com").rstrip("/"),
        vendor_timeout=_read_positive_float(_VENDOR_TIMEOUT_ENV, 30.0),
        poll_interval=_read_positive_float(_POLL_INTERVAL_ENV, 300.0),
        retention_days=_read_positive_int(_RETENTION_DAYS_ENV, 90),
        credential_path=_read_optional_env(_CREDENTIAL_PATH_ENV, "./tmp/credential.json"),
        readings_path=_read_optional_env(_READINGS_PATH_ENV, "./tmp/readings.json"),
        reading_sink_url=_read_optional_env(_SINK_URL_ENV, None),
        session_refresh_url=_read_optional_env(_REFRESH_URL_ENV, None),
        log_level=_read_log_level("INFO"),
    )
