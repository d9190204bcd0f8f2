"""Producers of sensor readings: a simulated random walk and a push-driven feed."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime
from threading import Lock
from typing import Callable, Optional, Union

from weatherstation.errors import MalformedInputError
from weatherstation.events import ChangeEmitter, Listener
from weatherstation.readings import Reading, Value, utcnow

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Parser = Callable[[Union[bytes, str]], Value]

LOWER_BOUND = 20.0
UPPER_BOUND = 40.0
INITIAL_TEMPERATURE = 30.0


class ValueSource(ABC):
    """Owns the current Reading and tells listeners whenever it is replaced."""

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._reading: Optional[Reading] = None
        self._reading_lock = Lock()
        self._changes: ChangeEmitter[Reading] = ChangeEmitter()

    def current_reading(self) -> Optional[Reading]:
        return self._reading

    def on_change(self, listener: Listener) -> int:
        return self._changes.subscribe(listener)

    def off_change(self, token: int) -> None:
        self._changes.unsubscribe(token)

    def _replace(self, value: Value) -> Reading:
        with self._reading_lock:
            now = self._clock()
            previous = self._reading
            if previous is not None and now < previous.timestamp:
                now = previous.timestamp
            reading = Reading(value=value, timestamp=now)
            self._reading = reading
        self._changes.publish(reading)
        return reading

    @abstractmethod
    def start(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...


class SimulatedSource(ValueSource):
    """
    Random walk between LOWER_BOUND and UPPER_BOUND, stepped by a single timer.

    The timer is shared by every observer of the resource; tick() performs one
    step and is what the timer calls.
    """

    def __init__(
        self,
        interval: float = 1.0,
        initial: float = INITIAL_TEMPERATURE,
        rng: Optional[random.Random] = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(clock=clock)
        self.interval = interval
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None
        self._reading = Reading(value=float(initial), timestamp=clock())

    def next_value(self, current: float) -> float:
        return min(max(current + 0.5 - self._rng.random(), LOWER_BOUND), UPPER_BOUND)

    def tick(self) -> Reading:
        current = self._reading.value if self._reading is not None else INITIAL_TEMPERATURE
        return self._replace(self.next_value(float(current)))

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Simulated source started (interval=%ss)", self.interval)

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Simulated source stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.tick()
            except Exception:
                logger.exception("Simulated update failed")


def parse_feed_record(raw: Union[bytes, str]) -> str:
    """
    Turn one line of the external feed into a reading value.

    A JSON object must carry a "value" member; any other non-empty line is
    used verbatim.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedInputError(f"undecodable record: {exc}") from exc
    line = raw.strip()
    if not line:
        raise MalformedInputError("empty record")
    if not line.startswith("{"):
        return line
    try:
        record = json.loads(line)
    except json.JSONDecodeError as exc:
        raise MalformedInputError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(record, dict) or "value" not in record:
        raise MalformedInputError("record has no value")
    return str(record["value"])


class FeedSource(ValueSource):
    """Reading pushed from an external feed such as a serial device."""

    def __init__(self, parser: Parser = parse_feed_record, clock: Clock = utcnow) -> None:
        super().__init__(clock=clock)
        self._parser = parser
        self.accepted = 0
        self.discarded = 0

    def feed(self, raw: Union[bytes, str]) -> Optional[Reading]:
        try:
            value = self._parser(raw)
        except MalformedInputError as exc:
            self.discarded += 1
            logger.warning(
                "Discarding malformed feed record: %s",
                exc.message,
                extra={"discarded": self.discarded},
            )
            return None
        self.accepted += 1
        return self._replace(value)

    def feed_threadsafe(self, loop: asyncio.AbstractEventLoop, raw: Union[bytes, str]) -> None:
        loop.call_soon_threadsafe(self.feed, raw)

    # the feed is driven from outside, see serial_feed.SerialFeedReader
    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass
