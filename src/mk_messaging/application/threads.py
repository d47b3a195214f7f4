# src/mk_messaging/application/threads.py
"""ThreadAggregator — thread list for one user: fetched truth plus feed deltas.

The known message set is kept in delivery order (bulk load first, in the
server's ascending order, then feed events as they arrive). Threads are
re-derived from that whole set after every change via domain.aggregate.
Counterpart display names are looked up once per counterpart.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.enums import FeedEventType
from src.mk_messaging.application.schemas import MessageRecord
from src.mk_messaging.domain.models import ConversationThread, Message
from src.mk_messaging.domain.repository import MessageRepositoryProtocol
from src.mk_messaging.domain.threads import aggregate
from src.mk_messaging.infrastructure.persistence import MessageRepository
from src.mk_realtime.domain.events import ChangeEvent

logger = logging.getLogger(__name__)


class ThreadAggregator:
    def __init__(self, repo: MessageRepositoryProtocol | None = None) -> None:
        self._repo: MessageRepositoryProtocol = repo or MessageRepository()
        self._user_id: str | None = None
        self._messages: dict[str, Message] = {}
        self._names: dict[str, str | None] = {}
        self._threads: list[ConversationThread] = []

    @staticmethod
    def aggregate(messages: list[Message], current_user_id: str) -> list[ConversationThread]:
        return aggregate(messages, current_user_id)

    @property
    def threads(self) -> list[ConversationThread]:
        return list(self._threads)

    @property
    def total_unread(self) -> int:
        return sum(thread.unread_count for thread in self._threads)

    @property
    def unnamed(self) -> list[str]:
        """Counterparts whose profile has not been looked up yet."""
        return [t.counterpart_id for t in self._threads if t.counterpart_id not in self._names]

    def unread_for(self, counterpart_id: str) -> int:
        for thread in self._threads:
            if thread.counterpart_id == counterpart_id:
                return thread.unread_count
        return 0

    async def load(self, user_id: str, db: AsyncSession) -> list[ConversationThread]:
        """Bulk fetch every message involving ``user_id`` and re-derive.

        Feed events delivered while the fetch is in flight are folded in on
        top of the fetched snapshot rather than dropped.
        """
        self._user_id = user_id
        self._messages = {}
        messages = await self._repo.list_for_user(user_id, db)
        delivered = list(self._messages.values())
        self._messages = {message.id: message for message in messages}
        for message in delivered:
            self._fold(message)
        self._recompute()
        await self.resolve_names(db)
        return self.threads

    def reset(self, user_id: str, messages: list[Message]) -> None:
        self._user_id = user_id
        self._messages = {message.id: message for message in messages}
        self._recompute()

    async def resolve_names(self, db: AsyncSession) -> bool:
        """Look up display names of new counterparts. Returns True if any were fetched."""
        missing = self.unnamed
        if not missing:
            return False
        names = await self._repo.display_names(missing, db)
        for counterpart_id in missing:
            self._names[counterpart_id] = names.get(counterpart_id)
        self._recompute()
        return True

    def apply(self, event: ChangeEvent) -> bool:
        """Fold one messages event into the known set. Returns True on change.

        Raises MalformedEventError when the row does not validate.
        """
        if self._user_id is None or event.event_type == FeedEventType.DELETE:
            return False
        message = MessageRecord.from_row(event.row).to_domain()
        if not message.involves(self._user_id) or not self._fold(message):
            return False
        self._recompute()
        return True

    def mark_read_local(self, counterpart_id: str) -> int:
        """Zero the unread state of one thread without waiting for the feed."""
        if self._user_id is None:
            return 0
        flipped = 0
        for message in self._messages.values():
            if message.from_user == counterpart_id and message.is_unread_for(self._user_id):
                message.read = True
                flipped += 1
        if flipped:
            self._recompute()
        return flipped

    def _fold(self, message: Message) -> bool:
        existing = self._messages.get(message.id)
        if existing is None:
            self._messages[message.id] = message
        elif message.read and not existing.read:
            existing.read = True
        else:
            return False
        return True

    def _recompute(self) -> None:
        if self._user_id is None:
            self._threads = []
            return
        self._threads = aggregate(self._messages.values(), self._user_id, self._names)
