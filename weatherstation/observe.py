"""
Observable sensor resource.

A client that registers with Observe=0 gets an Observer holding its response
stream. Every change of the ValueSource is rendered once per content format
and written to each registered observer in change order. An observer leaves
the set exactly once: when its transport session ends, when a write fails,
or when the resource is closed. Once it has left, it no longer holds the
stream, so nothing can be written to it.
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import Dict, Optional, Protocol

from aiocoap import CONTENT, Message

from weatherstation.errors import DataUnavailableError, TransportError
from weatherstation.readings import Reading
from weatherstation.representation import TURTLE, RepresentationBuilder
from weatherstation.sources import ValueSource

logger = logging.getLogger(__name__)


class ObservationStream(Protocol):
    """The still-open response channel of one observing client."""

    @property
    def stream_id(self) -> str:
        ...

    def write(self, message: Message) -> None:
        ...

    def close(self, final: Optional[Message] = None) -> None:
        ...

    def abort(self) -> None:
        """End the channel without a final response."""
        ...


class Observer:
    def __init__(self, stream: ObservationStream, content_format: int) -> None:
        self.id = stream.stream_id
        self.content_format = content_format
        self.notified = 0
        self._stream: Optional[ObservationStream] = stream
        self._lock = RLock()

    @property
    def open(self) -> bool:
        return self._stream is not None

    def send(self, message: Message) -> bool:
        """Write to the stream; False if the observer was closed in the meantime."""
        with self._lock:
            if self._stream is None:
                return False
            self._stream.write(message)
            self.notified += 1
            return True

    def close(self, final: Optional[Message] = None) -> None:
        with self._lock:
            stream, self._stream = self._stream, None
            if stream is not None:
                stream.close(final)

    def abandon(self) -> None:
        with self._lock:
            stream, self._stream = self._stream, None
            if stream is not None:
                stream.abort()


class ObserverHandle:
    """Returned by register_observer; the only way to unregister."""

    def __init__(self, observer: Observer, resource: "ObservableResource") -> None:
        self.observer_id = observer.id
        self.resource = resource
        self._observer: Optional[Observer] = observer

    @property
    def active(self) -> bool:
        return self._observer is not None

    def cancel(self) -> None:
        self.resource.unregister_observer(self)

    def _release(self) -> Optional[Observer]:
        observer, self._observer = self._observer, None
        return observer

    def __repr__(self) -> str:
        return f"ObserverHandle({self.observer_id!r}, active={self.active})"


class ObservableResource:
    def __init__(self, source: ValueSource, builder: RepresentationBuilder) -> None:
        self.source = source
        self.builder = builder
        self._observers: Dict[str, Observer] = {}
        self._handles: Dict[str, ObserverHandle] = {}
        self._lock = RLock()
        self._token: Optional[int] = source.on_change(self._on_change)

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def start(self) -> None:
        """Start the source's timer; one per resource, however many observers."""
        self.source.start()

    def close(self) -> None:
        if self._token is not None:
            self.source.off_change(self._token)
            self._token = None
        self.source.stop()
        with self._lock:
            handles = list(self._handles.values())
        for handle in handles:
            self.unregister_observer(handle)

    def _render(self, reading: Reading, content_format: int) -> Message:
        payload = self.builder.reading(reading, content_format)
        return Message(code=CONTENT, payload=payload, content_format=content_format)

    def handle_one_shot(self, content_format: int = TURTLE) -> Message:
        reading = self.source.current_reading()
        if reading is None:
            raise DataUnavailableError()
        return self._render(reading, content_format)

    def register_observer(
        self, stream: ObservationStream, content_format: int = TURTLE
    ) -> Optional[ObserverHandle]:
        """
        Send the current representation and subscribe the stream to changes.

        Without a reading the stream gets the not-found response and is
        closed instead; nothing is registered and None is returned.
        """
        observer = Observer(stream, content_format)
        with self._lock:
            replaced = self._handles.get(observer.id)
        if replaced is not None:
            # same client renewing its registration; a final response on the
            # old stream would carry the renewed token too
            previous = self._remove(replaced)
            if previous is not None:
                previous.abandon()

        handle = ObserverHandle(observer, self)
        try:
            # snapshot, first write and insertion happen under the lock, so a
            # change round either sees the observer after its snapshot or not
            # at all
            with self._lock:
                observer.send(self.handle_one_shot(content_format))
                self._observers[observer.id] = observer
                self._handles[observer.id] = handle
                count = len(self._observers)
        except DataUnavailableError as exc:
            handle._release()
            observer.close(exc.to_message())
            return None
        except (TransportError, OSError) as exc:
            logger.warning("Initial notification failed: %s", exc, extra={"observer_id": observer.id})
            handle._release()
            observer.close()
            return None

        logger.info(
            "Observer registered",
            extra={"observer_id": observer.id, "observer_count": count},
        )
        return handle

    def unregister_observer(self, handle: ObserverHandle, final: Optional[Message] = None) -> None:
        observer = self._remove(handle)
        if observer is not None:
            observer.close(final)

    def _remove(self, handle: ObserverHandle) -> Optional[Observer]:
        observer = handle._release()
        if observer is None:
            return None
        with self._lock:
            if self._observers.get(observer.id) is observer:
                del self._observers[observer.id]
                del self._handles[observer.id]
            count = len(self._observers)
        logger.info(
            "Observer unregistered after %d notifications",
            observer.notified,
            extra={"observer_id": observer.id, "observer_count": count},
        )
        return observer

    def _deliver(self, handle: ObserverHandle, observer: Observer, message: Message) -> None:
        try:
            observer.send(message)
        except (TransportError, OSError) as exc:
            logger.warning(
                "Notification failed: %s",
                exc,
                extra={"observer_id": observer.id},
            )
            self.unregister_observer(handle)

    def _on_change(self, reading: Reading) -> None:
        with self._lock:
            targets = [(self._handles[key], observer) for key, observer in self._observers.items()]
        # render once per format; every observer still gets its own Message
        payloads: Dict[int, bytes] = {}
        for handle, observer in targets:
            fmt = observer.content_format
            if fmt not in payloads:
                payloads[fmt] = self.builder.reading(reading, fmt)
            self._deliver(handle, observer, Message(code=CONTENT, payload=payloads[fmt], content_format=fmt))
