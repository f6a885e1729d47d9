from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from syntaxfitness.utils.channel import Channel, Subscription
from syntaxfitness.utils.exceptions import RunStoreException

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class LiveQuery(Generic[T]):
    """
    A reactive read against the RunStore. `current()` always runs the underlying query, so the value is never
    cached independently of the table. Subscribers receive the current value on subscription and a freshly
    recomputed value after every committed write to the store.
    """

    def __init__(self, name: str, query_fn: Callable[[], T]):
        self._name = name
        self._query_fn = query_fn
        self._channel: Channel[T] = Channel(name=name)

    @property
    def name(self) -> str:
        return self._name

    def current(self) -> T:
        return self._query_fn()

    def subscribe(self) -> Subscription[T]:
        sub = self._channel.subscribe(replay_latest=False)
        sub.offer(self.current())
        return sub

    def refresh(self) -> None:
        """Recomputes the query and publishes the result, but only when someone is listening."""
        if self._channel.subscriber_count == 0:
            return
        try:
            value = self.current()
        except RunStoreException:
            _LOGGER.error(f"Failed to refresh live query '{self._name}'.", exc_info=True)
            return
        self._channel.publish(value)
