"""CSV export of the reading history, one row per sensor or thermostat."""

from __future__ import annotations

import csv
import io
from typing import Any, Iterable, Optional

from app.schemas import Reading

CSV_COLUMNS = (
    "timestamp",
    "type",
    "serial",
    "room",
    "temperature_c",
    "temperature_f",
    "battery_level",
    "is_active",
    "hvac_action",
    "hvac_mode",
    "humidity",
)


def _cell(value: Optional[Any]) -> Any:
    return "" if value is None else value


def readings_to_csv(readings: Iterable[Reading]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for reading in readings:
        timestamp = reading.timestamp.isoformat().replace("+00:00", "Z")
        for sensor in reading.sensors:
            writer.writerow(
                [
                    timestamp,
                    "sensor",
                    sensor.serial,
                    sensor.room,
                    _cell(sensor.temperature_c),
                    _cell(sensor.temperature_f),
                    _cell(sensor.battery_level),
                    1 if sensor.is_active else 0,
                    "",
                    "",
                    "",
                ]
            )
        for thermostat in reading.thermostats:
            writer.writerow(
                [
                    timestamp,
                    "thermostat",
                    thermostat.serial,
                    thermostat.room,
                    _cell(thermostat.current_temperature_c),
                    _cell(thermostat.current_temperature_f),
                    "",
                    "",
                    thermostat.hvac_action.value,
                    thermostat.hvac_mode,
                    _cell(thermostat.humidity),
                ]
            )
    return buffer.getvalue()
