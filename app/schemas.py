"""Pydantic schemas for the normalized domain model and the HTTP API layer."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class HvacAction(str, Enum):
    """What the thermostat's HVAC equipment is doing right now."""

    heating = "heating"
    cooling = "cooling"
    fan = "fan"
    idle = "idle"


class SchedulerState(str, Enum):
    """Poll scheduler lifecycle states exposed via the API."""

    disarmed = "disarmed"
    armed = "armed"
    polling = "polling"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Credential(BaseModel):
    """Session token captured from a live vendor session."""

    token: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("captured_at")
    @classmethod
    def _normalize_captured_at(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Sensor(BaseModel):
    """Remote temperature sensor state at capture time."""

    serial: str
    room: str = "Unknown"
    temperature_c: Optional[float] = None
    temperature_f: Optional[float] = None
    battery_level: Optional[float] = None
    thermostat_serial: Optional[str] = Field(
        default=None, description="Thermostat whose link settings list this sensor."
    )
    is_active: bool = Field(
        default=False, description="Sensor currently drives the thermostat's temperature control."
    )


class Thermostat(BaseModel):
    """Thermostat live state at capture time."""

    serial: str
    room: str = "Thermostat"
    current_temperature_c: Optional[float] = None
    current_temperature_f: Optional[float] = None
    target_temperature_c: Optional[float] = None
    target_temperature_f: Optional[float] = None
    hvac_mode: str = "off"
    hvac_action: HvacAction = HvacAction.idle
    humidity: Optional[float] = None


class Reading(BaseModel):
    """One normalized snapshot of every sensor and thermostat."""

    model_config = {"frozen": True}

    timestamp: datetime
    sensors: List[Sensor] = Field(default_factory=list)
    thermostats: List[Thermostat] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _reject_empty(self) -> "Reading":
        if not self.sensors and not self.thermostats:
            raise ValueError("A reading needs at least one sensor or thermostat.")
        return self


class CredentialEvent(BaseModel):
    """Payload delivered by the in-page credential source.

    Either credential field may be missing; such an event carries no
    credential and never overwrites the stored one.
    """

    token: Optional[str] = None
    account_id: Optional[str] = None
    snapshot: Optional[Dict[str, Any]] = Field(
        default=None, description="Raw app_launch response observed in the live session."
    )

    @field_validator("token", "account_id")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        candidate = value.strip()
        return candidate or None


class CredentialEventResponse(BaseModel):
    """Outcome of handling one credential-source event."""

    armed: bool = Field(..., description="Whether polling is armed after this event.")
    reading_stored: bool = Field(
        default=False, description="Whether the event's snapshot produced a new stored reading."
    )


class AgentStatus(BaseModel):
    """Current state of the polling agent."""

    state: SchedulerState
    has_credential: bool
    account_id: Optional[str] = None
    credential_captured_at: Optional[datetime] = None
    reading_count: int = Field(..., ge=0)
    latest_timestamp: Optional[datetime] = None
