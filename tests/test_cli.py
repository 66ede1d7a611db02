from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.client import ApiClient
from cli.config import CLIConfig, load_config


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.status_payload: Dict[str, Any] = {
            "state": "armed",
            "has_credential": True,
            "account_id": "user-1",
            "credential_captured_at": "2025-02-01T12:00:00Z",
            "reading_count": 42,
            "latest_timestamp": "2025-02-01T12:05:00Z",
        }
        self.latest_payload: Optional[Dict[str, Any]] = {
            "timestamp": "2025-02-01T12:05:00Z",
            "sensors": [
                {
                    "serial": "18B430BB",
                    "room": "Kitchen",
                    "temperature_c": 22.3,
                    "temperature_f": 72.1,
                    "battery_level": 90,
                    "thermostat_serial": "09AA01AC",
                    "is_active": False,
                },
                {
                    "serial": "18B430AA",
                    "room": "Bedroom",
                    "temperature_c": 19.0,
                    "temperature_f": 66.2,
                    "battery_level": None,
                    "thermostat_serial": "09AA01AC",
                    "is_active": True,
                },
            ],
            "thermostats": [
                {
                    "serial": "09AA01AC",
                    "room": "Entryway",
                    "current_temperature_c": 21.5,
                    "current_temperature_f": 70.7,
                    "target_temperature_c": 20.0,
                    "target_temperature_f": 68.0,
                    "hvac_mode": "heat",
                    "hvac_action": "heating",
                    "humidity": 41,
                }
            ],
        }
        self.csv_body = "timestamp,type,serial\n2025-02-01T12:05:00Z,sensor,18B430AA\n2025-02-01T12:05:00Z,thermostat,09AA01AC\n"
        self.armed = True
        self.credentials: List[tuple[str, str]] = []
        self.cleared = False
        self.closed = False

    def get_status(self) -> Dict[str, Any]:
        return self.status_payload

    def get_latest(self) -> Optional[Dict[str, Any]]:
        return self.latest_payload

    def export_csv(self) -> str:
        return self.csv_body

    def send_credential(self, token: str, account_id: str) -> Dict[str, Any]:
        self.credentials.append((token, account_id))
        return {"armed": self.armed, "reading_stored": False}

    def clear_readings(self) -> None:
        self.cleared = True

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    client = StubClient(config=None)

    def factory(config):
        client.config = config
        return client

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return client


def test_status_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Agent Status" in result.stdout
    assert "state: armed" in result.stdout
    assert "reading_count: 42" in result.stdout
    assert stub.closed is True


def test_latest_command_renders_rooms(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["latest"])

    assert result.exit_code == 0
    assert "Thermostats" in result.stdout
    assert "Entryway: 70.7°F (21.5°C) -> 68.0°F (20.0°C) [heating, mode heat]" in result.stdout
    assert "Room Sensors" in result.stdout
    assert "Bedroom ★: 66.2°F (19.0°C) battery —" in result.stdout
    assert "Kitchen: 72.1°F (22.3°C) battery 90%" in result.stdout
    assert result.stdout.index("Bedroom") < result.stdout.index("Kitchen")


def test_latest_command_without_readings(runner: CliRunner, stub: StubClient) -> None:
    stub.latest_payload = None

    result = runner.invoke(app, ["latest"])

    assert result.exit_code == 0
    assert "No readings captured yet." in result.stdout


def test_export_command_writes_file(runner: CliRunner, stub: StubClient, tmp_path) -> None:
    output = tmp_path / "history.csv"

    result = runner.invoke(app, ["export", "--output", str(output)])

    assert result.exit_code == 0
    assert output.read_text(encoding="utf-8") == stub.csv_body
    assert "Exported 2 row(s)" in result.stdout


def test_credential_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["credential", "--token", "Basic c.abc", "--account", "user-1"])

    assert result.exit_code == 0
    assert stub.credentials == [("Basic c.abc", "user-1")]
    assert "polling armed" in result.stdout


def test_credential_command_reports_unarmed(runner: CliRunner, stub: StubClient) -> None:
    stub.armed = False

    result = runner.invoke(app, ["credential", "--token", "Basic c.abc", "--account", "user-1"])

    assert result.exit_code == 0
    assert "not armed" in result.stdout


def test_clear_command_requires_confirmation(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["clear"], input="n\n")

    assert result.exit_code == 1
    assert stub.cleared is False


def test_clear_command_with_yes(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["clear", "--yes"])

    assert result.exit_code == 0
    assert stub.cleared is True
    assert "Data cleared." in result.stdout


def test_base_url_option_overrides_env(runner: CliRunner, stub: StubClient, monkeypatch) -> None:
    monkeypatch.setenv("AGENT_BASE_URL", "http://from-env:9000")
    monkeypatch.delenv("CLI_TIMEOUT", raising=False)

    result = runner.invoke(app, ["--base-url", "http://agent.local:8080/", "status"])

    assert result.exit_code == 0
    assert stub.config == CLIConfig(base_url="http://agent.local:8080", timeout=30.0)


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_BASE_URL", "http://from-env:9000/")
    monkeypatch.setenv("CLI_TIMEOUT", "2.5")

    assert load_config() == CLIConfig(base_url="http://from-env:9000", timeout=2.5)

    monkeypatch.setenv("CLI_TIMEOUT", "-1")
    assert load_config().timeout == 30.0


def test_api_client_latest_returns_none_on_404() -> None:
    client = ApiClient(
        CLIConfig(base_url="http://agent.test"),
        transport=httpx.MockTransport(lambda request: httpx.Response(404, json={"detail": "none"})),
    )
    try:
        assert client.get_latest() is None
    finally:
        client.close()
