#!/usr/bin/env python3
"""Command-line front end for pycolossal-modbus using Typer."""

import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .calculation import evaluate_expression
from .client import ModbusDeviceClient
from .config import WorkerConfig, default_config, load_config
from .errors import CalculationError, ConfigError, ConnectError, PollError
from .messages import CalculationResults, Error
from .types import (
    BooleanValue,
    Channel,
    ChannelType,
    Device,
    DeviceSnapshot,
    IntegerValue,
    RealValue,
    TagValue,
    TcpConfig,
)
from .worker import start

app = typer.Typer(
    name="colossal",
    help="Poll Modbus TCP devices and evaluate calculation channels.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Worker configuration JSON (default: packaged demo config)", envvar="COLOSSAL_CONFIG"),
]
HostOption = Annotated[
    Optional[str],
    typer.Option("--host", "-h", help="Device hostname or IP address", envvar="COLOSSAL_HOST"),
]
PortOption = Annotated[
    int,
    typer.Option("--port", "-p", help="Modbus TCP port", envvar="COLOSSAL_PORT"),
]
UnitIdOption = Annotated[
    int,
    typer.Option("--unit-id", "-u", help="Modbus unit ID"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Connection and read timeout in seconds"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def parse_bool(value: str) -> bool:
    """Parse boolean value from string."""
    v = value.lower().strip()
    if v in ("true", "1", "on", "yes"):
        return True
    if v in ("false", "0", "off", "no"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def parse_tag_assignment(text: str) -> tuple[str, TagValue]:
    """
    Parse NAME=VALUE for offline evaluation.

    Integers 0-65535 become INT tags, true/false become booleans, anything else
    numeric becomes a REAL tag.
    """
    name, sep, raw = text.partition("=")
    name, raw = name.strip(), raw.strip()
    if not sep or not name or not raw:
        raise ValueError(f"Expected NAME=VALUE, got {text!r}")
    if raw.lower() in ("true", "false"):
        return name, BooleanValue(parse_bool(raw))
    if raw.isdigit() and int(raw) <= 0xFFFF:
        return name, IntegerValue(int(raw))
    return name, RealValue(float(raw))


def parse_channel_spec(text: str, channel_id: int) -> Channel:
    """Parse NAME:ADDRESS[:TYPE] (type int, real or coil; default real)."""
    parts = text.split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Expected NAME:ADDRESS[:TYPE], got {text!r}")
    type_str = parts[2].lower() if len(parts) == 3 else "real"
    try:
        channel_type = ChannelType(type_str)
    except ValueError:
        raise ValueError(f"Unknown channel type {type_str!r} (int, real, coil)") from None
    return Channel(id=channel_id, name=parts[0], address=int(parts[1], 0), channel_type=channel_type)


def format_snapshot(snapshot: DeviceSnapshot) -> str:
    pairs = " ".join(f"{ch.name}={ch.value}" for ch in snapshot.channels if ch.enabled)
    return f"{snapshot.timestamp.isoformat()} {snapshot.name} {pairs}"


def format_results(results: CalculationResults) -> str:
    pairs = " ".join(
        f"{ch.name}={ch.value:.2f}" + ("!" if ch.error else "") for ch in results.channels if ch.enabled
    )
    return f"{results.timestamp.isoformat()} calc {pairs}"


def _value_json(value: TagValue) -> Any:
    return value.value


def data_to_json(message: DeviceSnapshot | CalculationResults) -> dict[str, Any]:
    if isinstance(message, DeviceSnapshot):
        return {
            "type": "device",
            "timestamp": message.timestamp.isoformat(),
            "device": message.name,
            "values": {ch.name: _value_json(ch.value) for ch in message.channels},
        }
    return {
        "type": "calculation",
        "timestamp": message.timestamp.isoformat(),
        "values": {ch.name: ch.value for ch in message.channels},
        "errors": {ch.name: ch.error for ch in message.channels if ch.error},
    }


def _load(config_path: Optional[Path]) -> WorkerConfig:
    return load_config(config_path) if config_path else default_config()


# ============================================================================
# Commands
# ============================================================================


@app.command()
def run(
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
    format: Annotated[str, typer.Option("--format", "-f", help="Output format: text, json")] = "text",
    cycles: Annotated[int, typer.Option("--cycles", "-n", help="Stop after N device snapshots (0 = run forever)")] = 0,
) -> None:
    """
    Start the polling worker and print its status and data messages.

    Press Ctrl+C to stop gracefully.
    """
    setup_logging(verbose)

    if format not in ("text", "json"):
        typer.echo(f"Error: Invalid format '{format}'. Must be text or json.", err=True)
        raise typer.Exit(2)

    try:
        config = _load(config_path)
        handle = start(config)
    except ConfigError as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(2)

    snapshots = 0
    try:
        with handle:
            while handle.is_alive:
                for status in handle.status.drain():
                    typer.echo(str(status), err=isinstance(status, Error))
                message = handle.data.receive(timeout=0.2)
                if message is None:
                    continue
                if format == "json":
                    typer.echo(json.dumps(data_to_json(message)))
                elif isinstance(message, DeviceSnapshot):
                    typer.echo(format_snapshot(message))
                else:
                    typer.echo(format_results(message))
                if isinstance(message, DeviceSnapshot):
                    snapshots += 1
                    if cycles and snapshots >= cycles:
                        break
    except KeyboardInterrupt:
        typer.echo("\nStopped by user", err=True)
        raise typer.Exit(0)


@app.command()
def poll(
    channels: Annotated[list[str], typer.Argument(help="Channels as NAME:ADDRESS[:TYPE], e.g. MB1:2:real MB2:4:int")],
    host: HostOption = None,
    port: PortOption = 502,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 3.0,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
    interval: Annotated[float, typer.Option("--interval", "-i", help="Polling interval in seconds")] = 1.0,
    once: Annotated[bool, typer.Option("--once", help="Poll once and exit")] = False,
) -> None:
    """
    Poll one device directly, without the background worker.

    Any read error stops the command.
    """
    setup_logging(verbose)

    if not host:
        typer.echo("Error: --host is required for this command", err=True)
        raise typer.Exit(2)
    if interval <= 0:
        typer.echo(f"Error: Interval must be positive, got {interval}", err=True)
        raise typer.Exit(2)

    try:
        parsed = [parse_channel_spec(spec, i) for i, spec in enumerate(channels, start=1)]
        device = Device(id=0, code="MB", name=host, config=TcpConfig(host=host, port=port, unit_id=unit_id), channels=parsed)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)

    try:
        with ModbusDeviceClient(device, timeout=timeout) as client:
            while True:
                client.poll()
                snapshot = device.snapshot()
                if json_output:
                    typer.echo(json.dumps(data_to_json(snapshot)))
                else:
                    typer.echo(format_snapshot(snapshot))
                if once:
                    break
                time.sleep(interval)
    except (ConnectError, PollError) as e:
        typer.echo(f"Error: Connection/Modbus error: {e}", err=True)
        raise typer.Exit(3)
    except KeyboardInterrupt:
        typer.echo("\nStopped by user", err=True)
        raise typer.Exit(0)


@app.command(name="eval")
def eval_command(
    expression: Annotated[str, typer.Argument(help="Expression, e.g. 'MB1 * 2 + MB2'")],
    tag: Annotated[Optional[list[str]], typer.Option("--tag", help="Tag value as NAME=VALUE (repeatable)")] = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Evaluate a calculation expression offline against the given tag values.
    """
    setup_logging(verbose)

    try:
        tags = dict(parse_tag_assignment(t) for t in (tag or []))
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)

    try:
        result = evaluate_expression(expression, tags)
    except CalculationError as e:
        if json_output:
            typer.echo(json.dumps({"expression": expression, "error": str(e)}))
        else:
            typer.echo(f"Error: {type(e).__name__}: {e}", err=True)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps({"expression": expression, "value": result}))
    else:
        typer.echo(repr(result))


@app.command(name="show-config")
def show_config(
    config_path: ConfigOption = None,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Validate a worker configuration and print its devices, channels and calculations.
    """
    setup_logging(verbose)

    try:
        config = _load(config_path)
    except ConfigError as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(2)

    if json_output:
        out = {
            "poll_interval_s": config.poll_interval_s,
            "backoff_s": config.backoff_s,
            "devices": [
                {
                    "id": d.id,
                    "name": d.name,
                    "transport": str(d.config),
                    "address": d.config.address,
                    "channels": [
                        {"name": ch.name, "address": ch.address, "type": ch.channel_type.value, "enabled": ch.enabled}
                        for ch in d.channels
                    ],
                }
                for d in config.devices
            ],
            "calculations": [
                {"id": c.id, "name": c.name, "expression": c.expression, "enabled": c.enabled}
                for c in config.calculation_channels
            ],
        }
        typer.echo(json.dumps(out, indent=2))
        return

    for d in config.devices:
        typer.echo(f"Device {d.id} {d.name} [{d.code}] {d.config} {d.config.address}")
        for ch in d.channels:
            flag = "" if ch.enabled else " (disabled)"
            typer.echo(f"  {ch.name:<8} {str(ch.channel_type):<5} @{ch.address:<6} {ch.description}{flag}")
    for c in config.calculation_channels:
        flag = "" if c.enabled else " (disabled)"
        typer.echo(f"Calc {c.id} {c.name} = {c.expression}{flag}")
    typer.echo(f"Poll interval: {config.poll_interval_s}s, backoff: {config.backoff_s}s")


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"pycolossal-modbus {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """colossal - Modbus TCP polling with calculation channels."""
    pass


if __name__ == "__main__":
    app()
