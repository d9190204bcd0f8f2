from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional

import serial
from serial import SerialException

from weatherstation.errors import TransportError
from weatherstation.sources import FeedSource

logger = logging.getLogger(__name__)


class SerialFeedReader:
    """
    Reads newline-terminated records from a serial device on a daemon thread
    and hands each one to a FeedSource on the event loop.

    read timeouts only wake the thread up to check for stop(); a device error
    ends the reader, the server keeps running with the last reading.
    """

    def __init__(
        self,
        port: str,
        source: FeedSource,
        loop: asyncio.AbstractEventLoop,
        baudrate: int = 9600,
        timeout: float = 0.5,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.source = source
        self.loop = loop
        self.ser: Optional[serial.Serial] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def open(self) -> None:
        try:
            self.ser = serial.Serial(self.port, baudrate=self.baudrate, timeout=self.timeout)
            self.ser.reset_input_buffer()
        except SerialException as e:
            self.ser = None
            raise TransportError(f"cannot open {self.port}: {e}") from None

    def start(self) -> None:
        if self._thread is not None:
            return
        if self.ser is None:
            self.open()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=f"serial-feed-{self.port}", daemon=True)
        self._thread.start()
        logger.info("Reading feed from serial device", extra={"serial_port": self.port})

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.timeout * 4)
            self._thread = None
        if self.ser is not None:
            try:
                self.ser.close()
            finally:
                self.ser = None

    def _run(self) -> None:
        ser = self.ser
        while not self._stop.is_set():
            try:
                line = ser.readline()
            except SerialException as e:
                if not self._stop.is_set():
                    logger.error("Serial read failed: %s", e, extra={"serial_port": self.port})
                return
            if not line:
                continue
            self.source.feed_threadsafe(self.loop, line)
