# src/mk_realtime/feed/memory.py
"""InMemoryChangeFeed — single-process change feed over asyncio queues.

Used by tests as the fake channel and by single-process deployments
(CHANGE_FEED_BACKEND=memory). Every published event is copied per
subscriber so consumers never share a mutable row dict.
"""
import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator

from src.mk_realtime.domain.events import ChangeEvent, RowFilter

logger = logging.getLogger(__name__)


class InMemorySubscription:
    def __init__(self, feed: "InMemoryChangeFeed", table: str, row_filter: RowFilter) -> None:
        self.table = table
        self.row_filter = row_filter
        self._feed = feed
        # None marks the end of the stream
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self.closed = False

    def offer(self, event: ChangeEvent) -> None:
        if self.closed or not self.row_filter.matches(event.row):
            return
        self._queue.put_nowait(
            ChangeEvent(table=event.table, event_type=event.event_type, row=dict(event.row))
        )

    async def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed.detach(self)
        self._queue.put_nowait(None)


class InMemoryChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: dict[str, set[InMemorySubscription]] = defaultdict(set)

    async def subscribe(self, table: str, row_filter: RowFilter) -> InMemorySubscription:
        subscription = InMemorySubscription(self, table, row_filter)
        self._subscriptions[table].add(subscription)
        logger.debug(
            "memory feed: subscribed to %s (%d active)", table, len(self._subscriptions[table])
        )
        return subscription

    async def publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions.get(event.table, ())):
            subscription.offer(event)

    def detach(self, subscription: InMemorySubscription) -> None:
        self._subscriptions[subscription.table].discard(subscription)

    def subscriber_count(self, table: str) -> int:
        return len(self._subscriptions.get(table, ()))
