from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def format_temperature(fahrenheit: Optional[float], celsius: Optional[float]) -> str:
    if fahrenheit is None:
        return "—"
    celsius_text = f"{celsius:.1f}" if celsius is not None else "?"
    return f"{fahrenheit}°F ({celsius_text}°C)"


def render_status(payload: Dict[str, Any]) -> None:
    echo_heading("Agent Status")
    echo_key_values(
        [
            ("state", payload.get("state")),
            ("has_credential", payload.get("has_credential")),
            ("account_id", payload.get("account_id") or "—"),
            ("credential_captured_at", payload.get("credential_captured_at") or "—"),
            ("reading_count", payload.get("reading_count")),
            ("latest_timestamp", payload.get("latest_timestamp") or "—"),
        ]
    )


def render_reading(payload: Dict[str, Any]) -> None:
    echo_heading(f"Reading at {payload.get('timestamp')}")

    thermostats = payload.get("thermostats") or []
    if thermostats:
        typer.echo()
        echo_heading("Thermostats")
        for thermostat in thermostats:
            target = format_temperature(
                thermostat.get("target_temperature_f"), thermostat.get("target_temperature_c")
            )
            current = format_temperature(
                thermostat.get("current_temperature_f"), thermostat.get("current_temperature_c")
            )
            typer.echo(
                f"  - {thermostat.get('room')}: {current} -> {target} "
                f"[{thermostat.get('hvac_action')}, mode {thermostat.get('hvac_mode')}]"
            )

    sensors = sorted(payload.get("sensors") or [], key=lambda item: str(item.get("room") or ""))
    if sensors:
        typer.echo()
        echo_heading("Room Sensors")
        for sensor in sensors:
            marker = " ★" if sensor.get("is_active") else ""
            battery = sensor.get("battery_level")
            battery_text = f"{round(battery)}%" if battery is not None else "—"
            typer.echo(
                f"  - {sensor.get('room')}{marker}: "
                f"{format_temperature(sensor.get('temperature_f'), sensor.get('temperature_c'))} "
                f"battery {battery_text}"
            )
