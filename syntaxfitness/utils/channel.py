"""
Minimal publish / subscribe primitive used for every "observable value" in the app: tracker session
updates, tracker failures and the RunStore live queries.

A `Channel` has a single writer path (`publish`) and any number of independent `Subscription`s. Each
subscription holds at most one pending value: a newer value replaces an unread one, so slow readers always
observe the latest state rather than a backlog.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Generic, TypeVar

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """
    A single reader of a `Channel`. Must be created while an asyncio event loop is running, since values are
    delivered onto that loop. Usable as an async iterator and as a (sync) context manager which closes it.
    """

    def __init__(self, channel: Channel[T], loop: asyncio.AbstractEventLoop):
        self._channel = channel
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, value: T) -> None:
        """Hands a value to this subscription from any thread."""
        if self._closed:
            return
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None
        if running_loop is self._loop:
            self._put_latest(value)
            return
        try:
            self._loop.call_soon_threadsafe(self._put_latest, value)
        except RuntimeError:
            _LOGGER.debug("Subscription event loop is closed. Dropping subscription.")
            self.close()

    def _put_latest(self, value: object) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(value)

    async def get(self) -> T:
        """Waits for the next value. Raises `StopAsyncIteration` once the subscription is closed."""
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        value = await self._queue.get()
        if value is _CLOSED:
            raise StopAsyncIteration
        return value

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channel.unsubscribe(self)
        try:
            self._loop.call_soon_threadsafe(self._put_latest, _CLOSED)
        except RuntimeError:
            pass

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        return await self.get()

    def __enter__(self) -> Subscription[T]:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class Channel(Generic[T]):
    """Broadcasts the latest published value to every open subscription."""

    def __init__(self, name: str, initial: T | None = None):
        self._name = name
        self._latest: T | None = initial
        self._has_value = initial is not None
        self._subscribers: set[Subscription[T]] = set()
        self._lock = threading.Lock()

    @property
    def latest(self) -> T | None:
        return self._latest

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, value: T) -> None:
        with self._lock:
            self._latest = value
            self._has_value = True
            subscribers = list(self._subscribers)
        _LOGGER.debug(f"Channel '{self._name}' publishing to {len(subscribers)} subscriber(s).")
        for sub in subscribers:
            sub.offer(value)

    def subscribe(self, replay_latest: bool = True) -> Subscription[T]:
        """
        Opens a new subscription on the running event loop. When `replay_latest` is set and a value has
        already been published, that value is the first one the subscription yields.
        """
        sub: Subscription[T] = Subscription(channel=self, loop=asyncio.get_running_loop())
        with self._lock:
            self._subscribers.add(sub)
            if replay_latest and self._has_value:
                sub.offer(self._latest)  # type: ignore[arg-type]
        return sub

    def unsubscribe(self, sub: Subscription[T]) -> None:
        with self._lock:
            self._subscribers.discard(sub)
