from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union

Value = Union[float, str]


@dataclass(frozen=True)
class Reading:
    """A sensor value and the instant it was produced."""

    value: Value
    timestamp: datetime

    def iso_timestamp(self) -> str:
        # millisecond precision, UTC, "Z" suffix
        stamp = self.timestamp.astimezone(timezone.utc).isoformat(timespec="milliseconds")
        return stamp.replace("+00:00", "Z")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
