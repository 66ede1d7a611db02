from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_reading, render_status


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for inspecting and feeding the thermostat polling agent.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Agent API base URL (defaults to AGENT_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each agent request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show scheduler state and stored history size."""
    state = _get_state(ctx)
    render_status(state.client.get_status())


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the most recent reading."""
    state = _get_state(ctx)
    payload = state.client.get_latest()
    if payload is None:
        typer.echo("No readings captured yet.")
        return
    render_reading(payload)


@app.command("export")
def export_command(
    ctx: typer.Context,
    output: Path = typer.Option(
        Path("nest_readings.csv"),
        "--output",
        "-o",
        dir_okay=False,
        help="Destination CSV file.",
    ),
) -> None:
    """Download the stored history as CSV."""
    state = _get_state(ctx)
    body = state.client.export_csv()
    output.write_text(body, encoding="utf-8")
    rows = max(len(body.splitlines()) - 1, 0)
    typer.secho(f"Exported {rows} row(s) to {output}", fg=typer.colors.GREEN)


@app.command("credential")
def credential_command(
    ctx: typer.Context,
    token: str = typer.Option(..., "--token", help="Authorization value captured from the session."),
    account_id: str = typer.Option(..., "--account", help="Vendor user id the token belongs to."),
) -> None:
    """Hand a captured credential to the agent and arm polling."""
    state = _get_state(ctx)
    result = state.client.send_credential(token, account_id)
    if result.get("armed"):
        typer.secho("Credential accepted; polling armed.", fg=typer.colors.GREEN)
    else:
        typer.secho("Credential accepted but polling is not armed.", fg=typer.colors.YELLOW)


@app.command("clear")
def clear_command(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Delete all stored readings."""
    state = _get_state(ctx)
    if not yes:
        typer.confirm("Delete all stored readings?", abort=True)
    state.client.clear_readings()
    typer.echo("Data cleared.")
