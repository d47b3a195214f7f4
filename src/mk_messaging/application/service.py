"""MessagingApplicationService — request/response view of the messaging core.

Each HTTP call builds a short-lived ThreadAggregator or ConversationStore;
the long-lived, feed-driven versions live in a realtime SyncSession.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.database import commit, rollback
from src.mk_common.enums import FeedEventType, FeedTable
from src.mk_common.identity import Identity
from src.mk_messaging.application.conversation import ConversationStore
from src.mk_messaging.application.schemas import (
    ConversationResponse,
    MarkReadResponse,
    MessageResponse,
    ThreadListResponse,
    ThreadResponse,
)
from src.mk_messaging.application.threads import ThreadAggregator
from src.mk_messaging.domain.repository import MessageRepositoryProtocol
from src.mk_messaging.infrastructure.persistence import MessageRepository, message_to_row
from src.mk_realtime.domain.events import ChangeEvent
from src.mk_realtime.feed.factory import publish_committed
from src.mk_realtime.feed.protocol import ChangeFeedProtocol


class MessagingApplicationService:
    def __init__(
        self,
        feed: ChangeFeedProtocol,
        repo: MessageRepositoryProtocol | None = None,
    ) -> None:
        self._feed = feed
        self._repo: MessageRepositoryProtocol = repo or MessageRepository()

    async def list_threads(self, identity: Identity, db: AsyncSession) -> ThreadListResponse:
        aggregator = ThreadAggregator(self._repo)
        threads = await aggregator.load(identity.id, db)
        return ThreadListResponse(
            threads=[ThreadResponse.from_domain(t) for t in threads],
            total_unread=aggregator.total_unread,
        )

    async def mark_thread_read(
        self, identity: Identity, counterpart_id: str, db: AsyncSession
    ) -> MarkReadResponse:
        try:
            marked = await self._repo.mark_read(counterpart_id, identity.id, db)
            await commit(db, "mark thread read")
        except Exception:
            await rollback(db)
            raise
        await publish_committed(
            self._feed,
            [
                ChangeEvent(FeedTable.MESSAGES.value, FeedEventType.UPDATE, message_to_row(m))
                for m in marked
            ],
        )
        return MarkReadResponse(counterpart_id=counterpart_id, marked_ids=[m.id for m in marked])

    async def open_conversation(
        self, identity: Identity, counterpart_id: str, db: AsyncSession
    ) -> ConversationResponse:
        store = ConversationStore(self._feed, self._repo)
        messages = await store.open(identity.id, counterpart_id, db)
        return ConversationResponse(
            counterpart_id=counterpart_id,
            messages=[MessageResponse.from_domain(m) for m in messages],
        )

    async def send_message(
        self, identity: Identity, counterpart_id: str, content: str, db: AsyncSession
    ) -> MessageResponse:
        store = ConversationStore(self._feed, self._repo)
        store.bind(identity.id, counterpart_id)
        message = await store.send(content, db)
        return MessageResponse.from_domain(message)
