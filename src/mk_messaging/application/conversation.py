# src/mk_messaging/application/conversation.py
"""ConversationStore — the one conversation a viewer has open.

open() loads the full history between the two identities and consumes
the viewer's unread state for that counterpart. Feed inserts for the
pair are folded in idempotently and in (created_at, id) order.

send() places a provisional copy in the timeline before the backend
call so the sender sees it at once. The provisional copy is replaced by
the persisted row when the insert returns, and is removed if the insert
fails. The echo of the same row from the feed is a no-op.
"""
import logging
import uuid
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.database import commit, rollback
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import FeedEventType, FeedTable
from src.mk_common.errors import EmptyMessageError, NoOpenConversationError
from src.mk_messaging.application.schemas import MessageRecord
from src.mk_messaging.domain.models import Message
from src.mk_messaging.domain.repository import MessageRepositoryProtocol
from src.mk_messaging.domain.timeline import MessageTimeline
from src.mk_messaging.infrastructure.persistence import MessageRepository, message_to_row
from src.mk_realtime.domain.events import ChangeEvent
from src.mk_realtime.feed.factory import publish_committed
from src.mk_realtime.feed.protocol import ChangeFeedProtocol

logger = logging.getLogger(__name__)


def normalize_content(content: str) -> str:
    stripped = content.strip() if content else ""
    if not stripped:
        raise EmptyMessageError()
    return stripped


class ConversationStore:
    def __init__(
        self,
        feed: ChangeFeedProtocol,
        repo: MessageRepositoryProtocol | None = None,
    ) -> None:
        self._feed = feed
        self._repo: MessageRepositoryProtocol = repo or MessageRepository()
        self._timeline = MessageTimeline()
        self._current_user: str | None = None
        self._counterpart: str | None = None
        self._generation = 0

    @property
    def is_open(self) -> bool:
        return self._current_user is not None

    @property
    def counterpart_id(self) -> str | None:
        return self._counterpart

    @property
    def messages(self) -> list[Message]:
        return self._timeline.messages

    def is_provisional(self, message_id: str) -> bool:
        return self._timeline.is_provisional(message_id)

    def is_pair(self, message: Message) -> bool:
        if self._current_user is None or self._counterpart is None:
            return False
        return {message.from_user, message.to_user} == {self._current_user, self._counterpart}

    async def open(self, current_user: str, counterpart: str, db: AsyncSession) -> list[Message]:
        """Load history ascending and mark the counterpart's unread messages read.

        Feed inserts for the pair that arrive while the history is being
        fetched are kept and merged with it.
        """
        self._generation += 1
        generation = self._generation
        self._current_user, self._counterpart = current_user, counterpart
        self._timeline = MessageTimeline()

        history = await self._repo.list_between(current_user, counterpart, db)
        try:
            marked = await self._repo.mark_read(counterpart, current_user, db)
            await commit(db, "mark conversation read")
        except Exception:
            await rollback(db)
            raise

        if generation != self._generation:
            logger.debug("Discarding history for superseded conversation with %s", counterpart)
        else:
            delivered = self._timeline.messages
            self._timeline.reset(history)
            for message in delivered:
                self._timeline.insert(message)
            # Rows committed after the history query may only be known from here.
            for message in marked:
                self._timeline.insert(message)
        await publish_committed(
            self._feed,
            [
                ChangeEvent(FeedTable.MESSAGES.value, FeedEventType.UPDATE, message_to_row(m))
                for m in marked
            ],
        )
        return self.messages

    def bind(self, current_user: str, counterpart: str) -> None:
        """Target a pair for send() without loading its history."""
        self._generation += 1
        self._current_user, self._counterpart = current_user, counterpart
        self._timeline = MessageTimeline()

    def close(self) -> None:
        self._generation += 1
        self._current_user = self._counterpart = None
        self._timeline = MessageTimeline()

    async def consume_unread(self, db: AsyncSession) -> list[Message]:
        """Mark what the counterpart sent since open() as read, keeping the timeline."""
        if self._current_user is None or self._counterpart is None:
            raise NoOpenConversationError()
        generation = self._generation
        try:
            marked = await self._repo.mark_read(self._counterpart, self._current_user, db)
            await commit(db, "mark conversation read")
        except Exception:
            await rollback(db)
            raise
        if generation == self._generation:
            for message in marked:
                self._timeline.insert(message)
        await publish_committed(
            self._feed,
            [
                ChangeEvent(FeedTable.MESSAGES.value, FeedEventType.UPDATE, message_to_row(m))
                for m in marked
            ],
        )
        return marked

    def apply(self, event: ChangeEvent) -> bool:
        """Fold a messages feed event for this pair. Returns True on insert.

        Raises MalformedEventError when the row does not validate.
        """
        if not self.is_open or event.event_type == FeedEventType.DELETE:
            return False
        message = MessageRecord.from_row(event.row).to_domain()
        if not self.is_pair(message):
            return False
        return self._timeline.insert(message)

    async def send(
        self,
        content: str,
        db: AsyncSession,
        on_provisional: Callable[[Message], Awaitable[None]] | None = None,
    ) -> Message:
        if self._current_user is None or self._counterpart is None:
            raise NoOpenConversationError()
        text = normalize_content(content)
        generation = self._generation
        provisional = Message(
            id=f"tmp_{uuid.uuid4().hex[:12]}",
            from_user=self._current_user,
            to_user=self._counterpart,
            content=text,
            read=False,
            created_at=utc_now(),
        )
        self._timeline.add_provisional(provisional)
        try:
            if on_provisional is not None:
                await on_provisional(provisional)
            persisted = await self._repo.insert(
                provisional.from_user, provisional.to_user, text, db
            )
            await commit(db, "send message")
        except Exception:
            await rollback(db)
            if generation == self._generation:
                self._timeline.discard(provisional.id)
            raise
        if generation == self._generation:
            self._timeline.confirm(provisional.id, persisted)
        await publish_committed(
            self._feed,
            [
                ChangeEvent(
                    FeedTable.MESSAGES.value, FeedEventType.INSERT, message_to_row(persisted)
                )
            ],
        )
        return persisted
