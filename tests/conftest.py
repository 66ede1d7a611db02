from __future__ import annotations

import asyncio
import copy
from typing import Any, Awaitable, Callable, Dict, List, Optional

import pytest

from app.schemas import Credential
from services.vendor_client import PollOutcome, Success

SAMPLE_SNAPSHOT: Dict[str, Any] = {
    "updated_buckets": [
        {
            "object_key": "where.STRUCTURE1",
            "object_revision": 12,
            "value": {
                "wheres": [
                    {"where_id": "w-entry", "name": "Entryway"},
                    {"where_id": "w-bedroom", "name": "Master Bedroom"},
                    {"where_id": "w-kitchen", "name": "Kitchen"},
                ]
            },
        },
        {"object_key": "structure.STRUCTURE1", "value": {"name": "Home"}},
        {"object_key": "device.09AA01AC", "value": {"where_id": "w-entry"}},
        {
            "object_key": "shared.09AA01AC",
            "value": {
                "current_temperature": 21.5,
                "target_temperature": 20.0,
                "target_temperature_type": "heat",
                "hvac_heater_state": True,
                "hvac_ac_state": False,
                "hvac_fan_state": True,
                "current_humidity": 41,
            },
        },
        {
            "object_key": "rcs_settings.09AA01AC",
            "value": {
                "associated_rcs_sensors": ["kryptonite.18B430AA", "kryptonite.18B430BB"],
                "active_rcs_sensors": ["kryptonite.18B430AA"],
            },
        },
        {
            "object_key": "kryptonite.18B430AA",
            "value": {"where_id": "w-bedroom", "current_temperature": 19.0, "battery_level": 87},
        },
        {
            "object_key": "kryptonite.18B430BB",
            "value": {"where_id": "w-kitchen", "current_temperature": 22.3, "battery_level": 90},
        },
    ]
}


def sensor_only_snapshot(celsius: float = 20.0) -> Dict[str, Any]:
    return {
        "updated_buckets": [
            {
                "object_key": "kryptonite.18B430CC",
                "value": {"where_id": "w-basement", "current_temperature": celsius},
            }
        ]
    }


@pytest.fixture
def snapshot() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_SNAPSHOT)


@pytest.fixture
def sensor_snapshot() -> Dict[str, Any]:
    return sensor_only_snapshot()


class ManualAlarm:
    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]]) -> None:
        self.interval = interval
        self.callback = callback
        self.elapsed = 0.0
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualAlarmFactory:
    """Alarm factory whose time only moves when a test advances it."""

    def __init__(self) -> None:
        self.alarms: List[ManualAlarm] = []

    def __call__(self, interval: float, callback: Callable[[], Awaitable[None]]) -> ManualAlarm:
        alarm = ManualAlarm(interval, callback)
        self.alarms.append(alarm)
        return alarm

    @property
    def active(self) -> List[ManualAlarm]:
        return [alarm for alarm in self.alarms if not alarm.cancelled]

    async def advance(self, seconds: float) -> None:
        for alarm in list(self.active):
            alarm.elapsed += seconds
            while alarm.elapsed >= alarm.interval and not alarm.cancelled:
                alarm.elapsed -= alarm.interval
                await alarm.callback()


@pytest.fixture
def alarms() -> ManualAlarmFactory:
    return ManualAlarmFactory()


class StubVendorClient:
    """Vendor client double returning scripted outcomes.

    When ``gate`` is set, each poll waits on it, which lets a test hold a
    poll in flight.
    """

    def __init__(self, outcomes: Optional[List[PollOutcome]] = None) -> None:
        self.outcomes: List[PollOutcome] = list(outcomes or [])
        self.default: PollOutcome = Success(snapshot=copy.deepcopy(SAMPLE_SNAPSHOT))
        self.calls: List[Credential] = []
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def poll(self, credential: Credential) -> PollOutcome:
        self.calls.append(credential)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            return self.outcomes.pop(0) if self.outcomes else self.default
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def vendor() -> StubVendorClient:
    return StubVendorClient()


class RecordingRefresher:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.calls = 0
        self.error = error

    async def request_refresh(self) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error


@pytest.fixture
def refresher() -> RecordingRefresher:
    return RecordingRefresher()
