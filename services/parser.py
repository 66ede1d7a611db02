"""Decode the vendor's app_launch bucket snapshot into a normalized reading."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Mapping, Optional

from app.schemas import HvacAction, Reading, Sensor, Thermostat
from models.buckets import Bucket, BucketType, buckets_of_type, flatten_buckets

logger = logging.getLogger(__name__)

UNKNOWN_ROOM = "Unknown"
THERMOSTAT_ROOM = "Thermostat"


class SnapshotFormatError(ValueError):
    """The response body does not have the ``updated_buckets`` structure."""


class ParseFailure(Exception):
    """A well-formed snapshot contained no sensors and no thermostats."""

    def __init__(self, bucket_types: list[str]) -> None:
        self.bucket_types = bucket_types
        listed = ", ".join(bucket_types) or "none"
        super().__init__(f"No sensors or thermostats in snapshot (bucket types: {listed}).")


@dataclass(frozen=True)
class SensorLink:
    """Sensors a thermostat's link settings associate with it."""

    thermostat_serial: str
    associated: FrozenSet[str] = field(default_factory=frozenset)
    active: FrozenSet[str] = field(default_factory=frozenset)


def celsius_to_fahrenheit(celsius: Optional[float]) -> Optional[float]:
    """Convert to Fahrenheit at one decimal, matching the vendor app display."""
    if celsius is None:
        return None
    return math.floor(celsius * 9 / 5 * 10 + 320 + 0.5) / 10


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _key_set(value: Any) -> FrozenSet[str]:
    if not isinstance(value, list):
        return frozenset()
    return frozenset(item for item in value if isinstance(item, str))


def build_room_table(buckets: Mapping[str, Bucket]) -> Dict[str, str]:
    rooms: Dict[str, str] = {}
    for bucket in buckets_of_type(buckets, BucketType.location):
        wheres = bucket.value.get("wheres")
        if not isinstance(wheres, list):
            continue
        for where in wheres:
            if not isinstance(where, Mapping):
                continue
            where_id = where.get("where_id")
            name = where.get("name")
            if isinstance(where_id, str) and isinstance(name, str):
                rooms[where_id] = name
    return rooms


def build_link_table(buckets: Mapping[str, Bucket]) -> list[SensorLink]:
    return [
        SensorLink(
            thermostat_serial=bucket.serial,
            associated=_key_set(bucket.value.get("associated_rcs_sensors")),
            active=_key_set(bucket.value.get("active_rcs_sensors")),
        )
        for bucket in buckets_of_type(buckets, BucketType.link_settings)
    ]


def _room(rooms: Mapping[str, str], where_id: Any, default: str) -> str:
    if not isinstance(where_id, str):
        return default
    return rooms.get(where_id, default)


def _resolve_link(sensor_key: str, links: list[SensorLink]) -> tuple[Optional[str], bool]:
    # First match wins; a sensor is expected to serve exactly one thermostat.
    for link in links:
        if sensor_key in link.associated:
            return link.thermostat_serial, sensor_key in link.active
    return None, False


def _parse_sensor(bucket: Bucket, rooms: Mapping[str, str], links: list[SensorLink]) -> Sensor:
    value = bucket.value
    celsius = _number(value.get("current_temperature"))
    thermostat_serial, is_active = _resolve_link(bucket.key, links)
    return Sensor(
        serial=bucket.serial,
        room=_room(rooms, value.get("where_id"), UNKNOWN_ROOM),
        temperature_c=celsius,
        temperature_f=celsius_to_fahrenheit(celsius),
        battery_level=_number(value.get("battery_level")),
        thermostat_serial=thermostat_serial,
        is_active=is_active,
    )


def _hvac_action(value: Mapping[str, Any]) -> HvacAction:
    if value.get("hvac_heater_state"):
        return HvacAction.heating
    if value.get("hvac_ac_state"):
        return HvacAction.cooling
    if value.get("hvac_fan_state"):
        return HvacAction.fan
    return HvacAction.idle


def _parse_thermostat(
    bucket: Bucket, buckets: Mapping[str, Bucket], rooms: Mapping[str, str]
) -> Thermostat:
    value = bucket.value
    device = buckets.get(f"{BucketType.device.value}.{bucket.serial}")
    where_id = device.value.get("where_id") if device is not None else None
    current = _number(value.get("current_temperature"))
    target = _number(value.get("target_temperature"))
    mode = value.get("target_temperature_type")
    return Thermostat(
        serial=bucket.serial,
        room=_room(rooms, where_id, THERMOSTAT_ROOM),
        current_temperature_c=current,
        current_temperature_f=celsius_to_fahrenheit(current),
        target_temperature_c=target,
        target_temperature_f=celsius_to_fahrenheit(target),
        hvac_mode=mode if isinstance(mode, str) and mode else "off",
        hvac_action=_hvac_action(value),
        humidity=_number(value.get("current_humidity")),
    )


def parse_snapshot(payload: Any, captured_at: Optional[datetime] = None) -> Reading:
    """Build a :class:`Reading` from an app_launch response body.

    The snapshot carries no trustworthy capture time, so the reading is
    stamped with ``captured_at`` (defaulting to now).

    Raises:
        SnapshotFormatError: the body is not an ``updated_buckets`` mapping.
        ParseFailure: no sensor or thermostat buckets were found.
    """
    if not isinstance(payload, Mapping):
        raise SnapshotFormatError(f"Expected a JSON object, got {type(payload).__name__}.")
    entries = payload.get("updated_buckets")
    if not isinstance(entries, list):
        raise SnapshotFormatError("Snapshot is missing the 'updated_buckets' list.")

    buckets = flatten_buckets(entries)
    rooms = build_room_table(buckets)
    links = build_link_table(buckets)

    sensors = [
        _parse_sensor(bucket, rooms, links)
        for bucket in buckets_of_type(buckets, BucketType.remote_sensor)
    ]
    thermostats = [
        _parse_thermostat(bucket, buckets, rooms)
        for bucket in buckets_of_type(buckets, BucketType.shared_state)
    ]

    if not sensors and not thermostats:
        prefixes = sorted({key.partition(".")[0] for key in buckets})
        raise ParseFailure(prefixes)

    if not thermostats:
        logger.debug("Snapshot has no thermostat buckets; reading holds sensors only.")

    timestamp = captured_at or datetime.now(timezone.utc)
    return Reading(timestamp=timestamp, sensors=sensors, thermostats=thermostats)
