from __future__ import annotations

import asyncio
import dataclasses
from enum import Enum
from typing import Optional

import typer
from aiocoap import error as coap_error

from weatherstation.client import fetch_reading, observe_readings
from weatherstation.errors import StationError
from weatherstation.logging_config import configure_logging
from weatherstation.settings import get_settings
from weatherstation.server import run_station


class SourceKind(str, Enum):
    simulated = "simulated"
    serial = "serial"


app = typer.Typer(
    help="CoAP weather station with observable sensor readings.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.command("serve")
def serve_command(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="The (local) port to listen on (default 5683)."),
    registry: Optional[str] = typer.Option(
        None,
        "--registry",
        "-r",
        help="URL of the registry, e.g. coap://141.83.151.196:5683/registry.",
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Address to bind (default ::)."),
    source: SourceKind = typer.Option(SourceKind.simulated, "--source", help="Where readings come from."),
    serial_port: Optional[str] = typer.Option(None, "--serial-port", help="Serial device for --source serial."),
    baudrate: Optional[int] = typer.Option(None, "--baudrate", help="Serial baud rate."),
    sensor: Optional[str] = typer.Option(
        None,
        "--sensor",
        help="Name of the sensor path (temperature, or weather for the serial source).",
    ),
) -> None:
    """Run the CoAP server."""
    settings = get_settings()
    overrides = {
        "port": port,
        "registry": registry,
        "host": host,
        "serial_port": serial_port,
        "baudrate": baudrate,
        "sensor": sensor,
    }
    if sensor is None and source is SourceKind.serial and settings.sensor == "temperature":
        overrides["sensor"] = "weather"
    settings = dataclasses.replace(settings, **{k: v for k, v in overrides.items() if v is not None})
    if source is SourceKind.serial and not settings.serial_port:
        raise typer.BadParameter("--serial-port is required with --source serial", param_hint="--serial-port")

    configure_logging(settings.log_level)
    try:
        asyncio.run(run_station(settings, source.value))
    except StationError as exc:
        typer.secho(f"error: {exc.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        pass


@app.command("get")
def get_command(
    uri: str = typer.Argument(..., help="Resource URI, e.g. coap://localhost/temperature."),
    accept: Optional[int] = typer.Option(None, "--accept", help="Content-format number to request."),
) -> None:
    """Fetch a resource once and print its payload."""
    try:
        response = asyncio.run(fetch_reading(uri, accept=accept))
    except coap_error.Error as exc:
        typer.secho(f"Failed to fetch resource: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Response Code: {response.code}")
    typer.echo(response.payload.decode("utf-8", errors="replace"))


@app.command("observe")
def observe_command(
    uri: str = typer.Argument(..., help="Observable resource URI."),
) -> None:
    """Observe a resource and print every notification."""

    async def _observe() -> None:
        async for notification in observe_readings(uri):
            typer.echo(f"Response Code: {notification.code}")
            typer.echo(notification.payload.decode("utf-8", errors="replace"))

    try:
        asyncio.run(_observe())
    except coap_error.Error as exc:
        typer.secho(f"Failed to observe resource: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        pass


def main() -> None:
    app()


if __name__ == "__main__":
    main()
