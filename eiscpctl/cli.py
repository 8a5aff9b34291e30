"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

import typer

from eiscpctl.api import Client
from eiscpctl.core.adapter import ReceiverAdapter
from eiscpctl.core.config import apply_overrides, load_config
from eiscpctl.core.errors import EiscpctlError
from eiscpctl.core.model import (
    CHANNEL_CONNECTIVITY,
    ChannelStateUpdated,
    CmdStatus,
    ConfigPatch,
    ConnectionStateChanged,
    DeviceSnapshot,
)
from eiscpctl.core.worker import AdapterWorker
from eiscpctl.transports.tcp import TCPTransport

app = typer.Typer(help="Onkyo/Pioneer receiver control over eISCP")


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="YAML config file"),
    host: str | None = typer.Option(None, "--host", help="Receiver host or IP"),
    port: int | None = typer.Option(None, "--port", help="ISCP port (default 60128)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"config": config, "host": host, "port": port}


def _build_client(ctx: typer.Context) -> Client:
    options = ctx.obj or {}
    loaded = load_config(options.get("config"))
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    config = apply_overrides(loaded.config, host=options.get("host"), port=options.get("port"))
    if not config.host:
        typer.echo("Warning: no receiver host configured (use --host or the config file)", err=True)
    return Client(config, transport=TCPTransport())


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "on" if value else "off"
    if isinstance(value, float):
        return f"{value:.0f}"
    return str(value)


@app.command("inputs")
def list_inputs(ctx: typer.Context) -> None:
    """List the active input codes and their labels."""
    try:
        client = _build_client(ctx)
        for code, label in client.input_labels().items():
            typer.echo(f"{code}: {label}")
    except EiscpctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Query power, mute, volume and input once and print them."""
    try:
        client = _build_client(ctx)
        values = client.refresh()
        state = "connected" if client.connected else "disconnected"
        typer.echo(f"{CHANNEL_CONNECTIVITY}: {state}")
        for channel, value in sorted(values.items()):
            if channel == CHANNEL_CONNECTIVITY:
                continue
            typer.echo(f"{channel}: {_format_value(value)}")
        if not client.connected:
            raise typer.Exit(code=1)
    except EiscpctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("set")
def set_channel(
    ctx: typer.Context,
    channel: str = typer.Argument(..., help="power, volume, mute or input"),
    value: str = typer.Argument(..., help="on/off, 0-100, or an input code/label"),
) -> None:
    """Write one channel value to the receiver."""
    try:
        client = _build_client(ctx)
        response = client.set_channel(channel, value)
    except EiscpctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    if response.status is not CmdStatus.SUCCESS:
        typer.echo(f"Error: {response.status.value}: {response.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Set {channel}={_format_value(response.final_value)}")


@app.command("probe-input")
def probe_input(ctx: typer.Context) -> None:
    """Read the current input (SLI) code and show the config patch to keep it."""
    try:
        client = _build_client(ctx)
        response, patch = client.probe_current_input()
    except EiscpctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    if response.status is not CmdStatus.SUCCESS:
        typer.echo(f"Error: {response.status.value}: {response.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Current input: {response.result}")
    if patch is not None:
        for key, value in sorted(patch.values.items()):
            typer.echo(f"  {key}: {value}")


@app.command("test-connection")
def test_connection(ctx: typer.Context) -> None:
    """Check that the receiver is reachable and answers a power query."""
    try:
        client = _build_client(ctx)
        response = client.test_connection()
    except EiscpctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    if response.status is not CmdStatus.SUCCESS:
        typer.echo(f"Error: {response.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo("Receiver reachable")


@app.command("watch")
def watch(
    ctx: typer.Context,
    duration: float = typer.Option(0.0, "--duration", help="Seconds to run (0 = until interrupted)"),
) -> None:
    """Run the adapter with its poll and heartbeat timers and print events."""
    try:
        adapter: ReceiverAdapter = _build_client(ctx).adapter
    except EiscpctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    worker = AdapterWorker(adapter)
    worker.start()
    deadline = time.monotonic() + duration if duration > 0 else None
    try:
        while deadline is None or time.monotonic() < deadline:
            for event in worker.submit(adapter.drain_events).result():
                _echo_event(event)
            time.sleep(0.2)
    except KeyboardInterrupt:
        pass
    finally:
        worker.stop()


def _echo_event(event: object) -> None:
    if isinstance(event, DeviceSnapshot):
        device = event.device
        typer.echo(f"device {device.id}: {device.name} ({device.manufacturer} {device.model})".rstrip())
    elif isinstance(event, ConnectionStateChanged):
        typer.echo("connected" if event.connected else "disconnected")
    elif isinstance(event, ChannelStateUpdated) and event.channel != CHANNEL_CONNECTIVITY:
        typer.echo(f"{event.channel}: {_format_value(event.value)}")
    elif isinstance(event, ConfigPatch):
        typer.echo(f"config patch: {event.values}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
