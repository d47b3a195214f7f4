# src/mk_realtime/feed/redis_feed.py
"""RedisChangeFeed — cross-process change feed over Redis pub/sub.

Channel per table: ``<CHANGE_FEED_CHANNEL_PREFIX>:<table>``.
Writers publish after commit; subscribers filter rows locally.
Malformed payloads are logged and dropped, never delivered.
"""
import logging
from collections.abc import AsyncIterator

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

from config.settings import settings
from src.mk_common.database import backend_errors
from src.mk_common.errors import MalformedEventError
from src.mk_realtime.domain.events import ChangeEvent, RowFilter

logger = logging.getLogger(__name__)

_POLL_TIMEOUT_SECONDS = 1.0


def channel_for(table: str, prefix: str | None = None) -> str:
    return f"{prefix or settings.CHANGE_FEED_CHANNEL_PREFIX}:{table}"


class RedisSubscription:
    def __init__(self, pubsub: PubSub, table: str, row_filter: RowFilter) -> None:
        self.table = table
        self.row_filter = row_filter
        self._pubsub = pubsub
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        while not self.closed:
            with backend_errors(f"receive {self.table} events"):
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=_POLL_TIMEOUT_SECONDS
                )
            if message is None or self.closed:
                continue
            try:
                event = ChangeEvent.from_json(message["data"])
            except MalformedEventError as exc:
                logger.warning("Dropping malformed %s event: %s", self.table, exc.message)
                continue
            if event.table != self.table or not self.row_filter.matches(event.row):
                continue
            yield event

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        with backend_errors(f"unsubscribe {self.table}"):
            await self._pubsub.unsubscribe()
            await self._pubsub.aclose()


class RedisChangeFeed:
    def __init__(self, redis: aioredis.Redis, prefix: str | None = None) -> None:
        self._redis = redis
        self._prefix = prefix or settings.CHANGE_FEED_CHANNEL_PREFIX

    async def subscribe(self, table: str, row_filter: RowFilter) -> RedisSubscription:
        pubsub = self._redis.pubsub()
        with backend_errors(f"subscribe {table}"):
            await pubsub.subscribe(channel_for(table, self._prefix))
        return RedisSubscription(pubsub, table, row_filter)

    async def publish(self, event: ChangeEvent) -> None:
        with backend_errors(f"publish {event.table} event"):
            await self._redis.publish(channel_for(event.table, self._prefix), event.to_json())
