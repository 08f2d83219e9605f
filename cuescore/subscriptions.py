from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


class Subscription(Generic[T]):
    """Lazy, unbounded stream of snapshots produced by polling ``query``.

    The first iteration step yields the current snapshot. Afterwards only
    snapshots that differ from the previously delivered one are yielded.
    ``close()`` stops delivery; it does not affect writes already issued
    by other code.
    """

    def __init__(self, query: Callable[[], T], interval: float = 1.0, name: str = "subscription"):
        self._query = query
        self.interval = interval
        self.name = name
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        if not self._closed.is_set():
            logger.debug("Closing %s", self.name)
        self._closed.set()

    def __iter__(self) -> Iterator[T]:
        previous = _MISSING
        while not self._closed.is_set():
            snapshot = self._query()
            if self._closed.is_set():
                break
            if previous is _MISSING or snapshot != previous:
                previous = snapshot
                yield snapshot
            if self._closed.wait(self.interval):
                break

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def subscribe(query: Callable[[], T], interval: float = 1.0, name: str = "subscription") -> Subscription[T]:
    return Subscription(query, interval=interval, name=name)


__all__ = ["Subscription", "subscribe"]
