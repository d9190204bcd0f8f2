"""Minimal publish/subscribe primitive used for change notification."""

from __future__ import annotations

import itertools
import logging
from threading import Lock
from typing import Callable, Dict, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[[T], None]


class ChangeEmitter(Generic[T]):
    """
    Ordered listener registry.

    publish() iterates over a snapshot taken at the start of the round, so
    listeners may subscribe or unsubscribe from inside a callback. A listener
    removed during a round is skipped if it has not been called yet.
    """

    def __init__(self) -> None:
        self._listeners: Dict[int, Listener] = {}
        self._tokens = itertools.count(1)
        self._lock = Lock()

    def subscribe(self, listener: Listener) -> int:
        with self._lock:
            token = next(self._tokens)
            self._listeners[token] = listener
        return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._listeners.pop(token, None)

    def publish(self, event: T) -> None:
        with self._lock:
            snapshot = list(self._listeners.items())
        for token, listener in snapshot:
            with self._lock:
                if token not in self._listeners:
                    continue
            try:
                listener(event)
            except Exception:
                logger.exception("Change listener %d failed", token)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
