"""Thread-safe publish/subscribe channel used for line and drop events."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, TypeVar

L = logging.getLogger("capture_runtime.events")

T = TypeVar("T")


class EventChannel(Generic[T]):
    """Deliver events to subscribers in registration order.

    Dispatch holds a re-entrant lock, so once `unsubscribe()` returns the
    callback is never invoked again. Callbacks may unsubscribe themselves.
    A failing subscriber is logged and does not stop delivery to the rest.
    """

    def __init__(self, name: str = ""):
        self.name = name or self.__class__.__name__
        self._subscribers: list[Callable[[T], None]] = []
        self._lock = threading.RLock()

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe():
            self.unsubscribe(callback)

        return _unsubscribe

    def unsubscribe(self, callback: Callable[[T], None]) -> bool:
        with self._lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                return False
            return True

    def publish(self, event: T) -> int:
        delivered = 0
        with self._lock:
            for callback in list(self._subscribers):
                # Skip callbacks removed by an earlier subscriber in this round.
                if callback not in self._subscribers:
                    continue
                try:
                    callback(event)
                    delivered += 1
                except Exception:
                    L.exception("%s subscriber %r failed", self.name, callback)
        return delivered

    def clear(self):
        with self._lock:
            self._subscribers.clear()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


__all__ = ["EventChannel"]
