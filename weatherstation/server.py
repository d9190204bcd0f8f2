"""aiocoap binding of the station: resource tree, observation streams and the serving loop."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Tuple

import aiocoap
import aiocoap.resource as resource
from aiocoap import CONTENT, SERVICE_UNAVAILABLE, Message

from weatherstation.device import DeviceDescriptor
from weatherstation.dispatch import RequestDispatcher, Route
from weatherstation.errors import TransportError
from weatherstation.observe import ObservableResource
from weatherstation.registry import DirectoryAnnouncer
from weatherstation.representation import ITM, RDF_FORMATS, TEXT_PLAIN, TURTLE, RepresentationBuilder
from weatherstation.serial_feed import SerialFeedReader
from weatherstation.settings import Settings
from weatherstation.sources import FeedSource, SimulatedSource, ValueSource

logger = logging.getLogger(__name__)

RDF_CONTENT_FORMATS = (TURTLE,) + tuple(number for number in RDF_FORMATS if number != TURTLE)

# Observe option values are 24 bit
OBSERVE_WRAP = 1 << 24


class ServerObservationStream:
    """
    Responses to one Observe=0 request, in the order they were written.

    Writes only queue the message; deliver() hands the queue to the aiocoap
    pipe. The stream ends with the message given to close(), silently with
    abort(), or with end() once the transport has lost interest.
    """

    def __init__(self, request: Message) -> None:
        self.stream_id = f"{request.remote.hostinfo}#{request.token.hex()}"
        self.closed = False
        self._pending: Deque[Tuple[Message, bool]] = deque()
        self._wakeup: Optional[asyncio.Event] = None

    @property
    def pending(self) -> int:
        return len(self._pending)

    def write(self, message: Message) -> None:
        if self.closed:
            raise TransportError(f"observation {self.stream_id} has ended")
        self._push(message, False)

    def close(self, final: Optional[Message] = None) -> None:
        if self.closed:
            return
        if final is None:
            final = Message(code=SERVICE_UNAVAILABLE, payload=b"Observation ended", content_format=TEXT_PLAIN)
        self._push(final, True)
        self.closed = True

    def abort(self) -> None:
        self.end()
        if self._wakeup is not None:
            self._wakeup.set()

    def end(self) -> None:
        self.closed = True
        self._pending.clear()

    def _push(self, message: Message, last: bool) -> None:
        self._pending.append((message, last))
        if self._wakeup is not None:
            self._wakeup.set()

    async def deliver(self, pipe) -> None:
        """Send queued responses until a last one was sent or the stream ended."""
        self._wakeup = asyncio.Event()
        sequence = 0
        while True:
            while self._pending:
                message, last = self._pending.popleft()
                last = last or not message.code.is_successful()
                if not last:
                    message.opt.observe = sequence
                    sequence = (sequence + 1) % OBSERVE_WRAP
                pipe.add_response(message, is_last=last)
                if last:
                    self.end()
                    return
            if self.closed:
                return
            self._wakeup.clear()
            await self._wakeup.wait()


class CoapRoot(resource.Resource):
    """
    Single aiocoap resource handing every request to the dispatcher.

    Observe=0 requests are driven here instead of through aiocoap's
    ServerObservation, whose trigger() keeps only the latest pending
    notification.
    """

    def __init__(self, dispatcher: RequestDispatcher) -> None:
        super().__init__()
        self.dispatcher = dispatcher

    async def render(self, request):
        return self.dispatcher.dispatch(request)

    async def render_to_pipe(self, pipe):
        request = pipe.request
        if request.opt.observe != 0:
            return await super().render_to_pipe(pipe)

        stream = ServerObservationStream(request)
        handle = self.dispatcher.observe(request, stream)
        try:
            await stream.deliver(pipe)
        finally:
            # the stream is ended before unregistering, so the transport
            # losing interest never produces a final response
            stream.end()
            if handle is not None:
                handle.cancel()


@dataclass
class Station:
    dispatcher: RequestDispatcher
    resource: ObservableResource
    descriptor: DeviceDescriptor
    builder: RepresentationBuilder


def build_station(settings: Settings, source: ValueSource, descriptor: Optional[DeviceDescriptor] = None) -> Station:
    if descriptor is None:
        descriptor = DeviceDescriptor.discover(
            device_id=settings.device_id,
            label=settings.label,
            group=settings.group,
            sensor_link=settings.sensor_link,
        )
    builder = RepresentationBuilder(descriptor.sensor_link)
    sensor = ObservableResource(source, builder)

    def render_device(content_format: int) -> Message:
        payload = builder.device(descriptor, content_format)
        return Message(code=CONTENT, payload=payload, content_format=content_format)

    dispatcher = RequestDispatcher()
    dispatcher.add_discovery()
    dispatcher.add_route(
        Route(
            ("device",),
            render_device,
            RDF_CONTENT_FORMATS,
            link=f'ct={TURTLE};rt="{ITM[descriptor.device_id]}"',
        )
    )
    dispatcher.add_resource(
        (settings.sensor,),
        sensor,
        RDF_CONTENT_FORMATS,
        link=f'ct={TURTLE};rt="{ITM[descriptor.sensor_link]}"',
    )
    return Station(dispatcher=dispatcher, resource=sensor, descriptor=descriptor, builder=builder)


async def serve(settings: Settings, source: ValueSource, stop: Optional[asyncio.Event] = None) -> None:
    """Serve until ``stop`` is set or the process receives SIGINT/SIGTERM."""
    station = build_station(settings, source)
    root = CoapRoot(station.dispatcher)
    context = await aiocoap.Context.create_server_context(root, bind=(settings.host, settings.port))
    station.resource.start()
    logger.info("CoAP server listening on port %d", settings.port)

    if stop is None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                # Windows
                pass

    announcement: Optional[asyncio.Task] = None
    if settings.registry:
        announcement = asyncio.create_task(DirectoryAnnouncer(settings.registry).announce(context))
    else:
        logger.info("No registry specified, skipping registration (use --help)")

    try:
        await stop.wait()
    finally:
        logger.info("Shutting down CoAP server")
        if announcement is not None and not announcement.done():
            announcement.cancel()
        station.resource.close()
        await context.shutdown()


def build_source(settings: Settings, kind: str) -> ValueSource:
    if kind == "serial":
        return FeedSource()
    return SimulatedSource(interval=settings.update_interval)


async def run_station(settings: Settings, kind: str = "simulated") -> None:
    """Wire the configured source (and its serial reader) to the server."""
    source = build_source(settings, kind)
    reader: Optional[SerialFeedReader] = None
    if isinstance(source, FeedSource):
        if not settings.serial_port:
            raise TransportError("a serial port is required for the serial source")
        reader = SerialFeedReader(
            settings.serial_port,
            source,
            asyncio.get_running_loop(),
            baudrate=settings.baudrate,
        )
        reader.start()
    try:
        await serve(settings, source)
    finally:
        if reader is not None:
            reader.stop()
            logger.info(
                "Serial feed stopped after %d records",
                source.accepted,
                extra={"discarded": source.discarded},
            )
