# src/mk_realtime/feed/factory.py
"""Process-wide change feed, chosen by CHANGE_FEED_BACKEND."""
import logging

from config.settings import settings
from src.mk_common.redis_client import get_redis
from src.mk_realtime.domain.events import ChangeEvent
from src.mk_realtime.feed.memory import InMemoryChangeFeed
from src.mk_realtime.feed.protocol import ChangeFeedProtocol
from src.mk_realtime.feed.redis_feed import RedisChangeFeed

logger = logging.getLogger(__name__)

_feed: ChangeFeedProtocol | None = None


async def get_change_feed() -> ChangeFeedProtocol:
    """Get or create the change feed. Also usable as a FastAPI dependency."""
    global _feed  # noqa: PLW0603
    if _feed is None:
        if settings.CHANGE_FEED_BACKEND == "memory":
            _feed = InMemoryChangeFeed()
        else:
            _feed = RedisChangeFeed(await get_redis())
        logger.info("Change feed backend: %s", settings.CHANGE_FEED_BACKEND)
    return _feed


def reset_change_feed() -> None:
    global _feed  # noqa: PLW0603
    _feed = None


async def publish_committed(feed: ChangeFeedProtocol, events: list[ChangeEvent]) -> None:
    """Publish events for rows that are already committed.

    The rows are durable at this point, so a publish failure is logged
    rather than raised; subscribers converge on their next refetch.
    """
    for event in events:
        try:
            await feed.publish(event)
        except Exception:
            logger.exception("Failed to publish %s %s event", event.table, event.event_type.value)
