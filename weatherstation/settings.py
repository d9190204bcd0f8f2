from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

_PORT_ENV = "WEATHERSTATION_PORT"
_HOST_ENV = "WEATHERSTATION_HOST"
_REGISTRY_ENV = "WEATHERSTATION_REGISTRY"
_DEVICE_ID_ENV = "WEATHERSTATION_DEVICE_ID"
_LABEL_ENV = "WEATHERSTATION_LABEL"
_GROUP_ENV = "WEATHERSTATION_GROUP"
_GROUP_NUMBER_ENV = "WEATHERSTATION_GROUP_NUMBER"
_SENSOR_ENV = "WEATHERSTATION_SENSOR"
_INTERVAL_ENV = "WEATHERSTATION_INTERVAL"
_SERIAL_PORT_ENV = "WEATHERSTATION_SERIAL_PORT"
_BAUDRATE_ENV = "WEATHERSTATION_BAUDRATE"
_LOG_LEVEL_ENV = "WEATHERSTATION_LOG_LEVEL"

DEFAULT_PORT = 5683


@dataclass(frozen=True)
class Settings:
    host: str
    port: int
    registry: Optional[str]
    device_id: str
    label: str
    group: str
    group_number: int
    sensor: str
    update_interval: float
    serial_port: Optional[str]
    baudrate: int
    log_level: str

    @property
    def sensor_link(self) -> str:
        return f"groups/{self.group_number}/sensors/{self.sensor}"


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@lru_cache
def get_settings() -> Settings:
    return Settings(
        host=_read_str_env(_HOST_ENV, "::"),
        port=_read_positive_int(_PORT_ENV, DEFAULT_PORT),
        registry=_read_optional_env(_REGISTRY_ENV),
        device_id=_read_str_env(_DEVICE_ID_ENV, "device05"),
        label=_read_str_env(_LABEL_ENV, "Weather station"),
        group=_read_str_env(_GROUP_ENV, "SVA_05-SS15"),
        group_number=_read_positive_int(_GROUP_NUMBER_ENV, 5),
        sensor=_read_str_env(_SENSOR_ENV, "temperature"),
        update_interval=_read_positive_float(_INTERVAL_ENV, 1.0),
        serial_port=_read_optional_env(_SERIAL_PORT_ENV),
        baudrate=_read_positive_int(_BAUDRATE_ENV, 9600),
        log_level=_read_str_env(_LOG_LEVEL_ENV, "INFO").upper(),
    )
