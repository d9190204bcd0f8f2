from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import pytest
from rdflib import Graph

from weatherstation.device import DeviceDescriptor
from weatherstation.representation import ITM, RepresentationBuilder
from weatherstation.settings import Settings, get_settings

SENSOR_LINK = "groups/5/sensors/temperature"


class FixedRandom(random.Random):
    """Returns the given values from random(), then 0.5 forever."""

    def __init__(self, values: Iterable[float] = ()) -> None:
        super().__init__(0)
        self._values = list(values)

    def random(self) -> float:
        if self._values:
            return self._values.pop(0)
        return 0.5


class StepClock:
    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


class RecordingStream:
    """Observation stream double; any write after close fails the test."""

    def __init__(self, stream_id: str = "client-1") -> None:
        self.stream_id = stream_id
        self.messages: List = []
        self.closed = False
        self.aborted = False
        self.final = None

    def write(self, message) -> None:
        if self.closed:
            pytest.fail(f"write on closed stream {self.stream_id}")
        self.messages.append(message)

    def close(self, final=None) -> None:
        self.closed = True
        self.final = final

    def abort(self) -> None:
        self.closed = True
        self.aborted = True


def sensor_value(message, sensor_link: str = SENSOR_LINK):
    graph = Graph()
    graph.parse(data=message.payload.decode("utf-8"), format="turtle")
    return graph.value(ITM[f"{sensor_link}Status"], ITM.hasValue).toPython()


def make_settings(**overrides) -> Settings:
    values = dict(
        host="::1",
        port=5683,
        registry=None,
        device_id="device05",
        label="Weather station",
        group="SVA_05-SS15",
        group_number=5,
        sensor="temperature",
        update_interval=1.0,
        serial_port=None,
        baudrate=9600,
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def builder() -> RepresentationBuilder:
    return RepresentationBuilder(SENSOR_LINK)


@pytest.fixture()
def descriptor() -> DeviceDescriptor:
    return DeviceDescriptor(
        device_id="device05",
        label="Weather station",
        group="SVA_05-SS15",
        sensor_link=SENSOR_LINK,
        addresses=("192.168.0.10", "10.0.0.5"),
    )


@pytest.fixture()
def settings() -> Settings:
    return make_settings()
