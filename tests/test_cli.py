from __future__ import annotations

import pytest
from aiocoap import CONTENT, Message
from typer.testing import CliRunner

from weatherstation.cli import app


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def captured(monkeypatch):
    calls = []

    async def fake_run_station(settings, kind):
        calls.append((settings, kind))

    monkeypatch.setattr("weatherstation.cli.run_station", fake_run_station)
    monkeypatch.setattr("weatherstation.cli.configure_logging", lambda level=None: None)
    for name in ("WEATHERSTATION_PORT", "WEATHERSTATION_REGISTRY", "WEATHERSTATION_SENSOR", "WEATHERSTATION_SERIAL_PORT"):
        monkeypatch.delenv(name, raising=False)
    return calls


def test_serve_defaults(runner: CliRunner, captured) -> None:
    result = runner.invoke(app, ["serve"])

    assert result.exit_code == 0
    ((settings, kind),) = captured
    assert kind == "simulated"
    assert settings.port == 5683
    assert settings.registry is None
    assert settings.sensor == "temperature"


def test_serve_options_override_settings(runner: CliRunner, captured) -> None:
    result = runner.invoke(app, ["serve", "-p", "5700", "--registry", "coap://rd.example.org/registry"])

    assert result.exit_code == 0
    ((settings, _kind),) = captured
    assert settings.port == 5700
    assert settings.registry == "coap://rd.example.org/registry"


def test_serial_source_requires_port(runner: CliRunner, captured) -> None:
    result = runner.invoke(app, ["serve", "--source", "serial"])

    assert result.exit_code != 0
    assert captured == []


def test_serial_source_serves_weather(runner: CliRunner, captured) -> None:
    result = runner.invoke(app, ["serve", "--source", "serial", "--serial-port", "/dev/ttyUSB0"])

    assert result.exit_code == 0
    ((settings, kind),) = captured
    assert kind == "serial"
    assert settings.serial_port == "/dev/ttyUSB0"
    assert settings.sensor == "weather"


def test_get_prints_payload(monkeypatch, runner: CliRunner) -> None:
    requested = []

    async def fake_fetch(uri, accept=None):
        requested.append((uri, accept))
        return Message(code=CONTENT, payload=b"itm:groups/5/sensors/temperature itm:hasStatus ...")

    monkeypatch.setattr("weatherstation.cli.fetch_reading", fake_fetch)

    result = runner.invoke(app, ["get", "coap://localhost/temperature", "--accept", "202"])

    assert result.exit_code == 0
    assert requested == [("coap://localhost/temperature", 202)]
    assert "hasStatus" in result.stdout


def test_observe_prints_every_notification(monkeypatch, runner: CliRunner) -> None:
    async def fake_observe(uri):
        for value in (b"30.0", b"30.4", b"29.9"):
            yield Message(code=CONTENT, payload=value)

    monkeypatch.setattr("weatherstation.cli.observe_readings", fake_observe)

    result = runner.invoke(app, ["observe", "coap://localhost/temperature"])

    assert result.exit_code == 0
    assert [line for line in result.stdout.splitlines() if line.startswith(("29", "30"))] == [
        "30.0",
        "30.4",
        "29.9",
    ]
