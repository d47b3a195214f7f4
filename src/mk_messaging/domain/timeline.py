"""MessageTimeline — ordered, de-duplicated message list for one conversation.

Display order is (created_at, id) ascending whatever order events arrive
in. Inserting an id that is already present never adds a second copy.
Locally sent messages may sit in the timeline as provisional entries
under a temporary id until the backend returns the persisted row.
"""
import bisect
from datetime import datetime, timezone

from src.mk_messaging.domain.models import Message

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _key(message: Message) -> tuple[datetime, str]:
    return (message.created_at or _EPOCH, message.id)


class MessageTimeline:
    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._keys: list[tuple[datetime, str]] = []
        self._by_id: dict[str, Message] = {}
        self._provisional: set[str] = set()

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def is_provisional(self, message_id: str) -> bool:
        return message_id in self._provisional

    def reset(self, messages: list[Message]) -> None:
        """Replace contents with fetched history; provisional entries survive."""
        pending = [self._by_id[mid] for mid in self._provisional]
        self._messages, self._keys, self._by_id = [], [], {}
        for message in messages:
            self.insert(message)
        for message in pending:
            self.insert(message)

    def insert(self, message: Message) -> bool:
        """Insert in sorted position. Returns False when the id is known.

        A duplicate delivery may still carry a newer ``read`` flag; that
        flag is folded into the stored copy without moving it.
        """
        existing = self._by_id.get(message.id)
        if existing is not None:
            if message.read and not existing.read:
                existing.read = True
            return False
        key = _key(message)
        index = bisect.bisect_right(self._keys, key)
        self._keys.insert(index, key)
        self._messages.insert(index, message)
        self._by_id[message.id] = message
        return True

    def add_provisional(self, message: Message) -> None:
        self.insert(message)
        self._provisional.add(message.id)

    def discard(self, message_id: str) -> None:
        message = self._by_id.pop(message_id, None)
        self._provisional.discard(message_id)
        if message is None:
            return
        index = self._keys.index(_key(message))
        del self._keys[index]
        del self._messages[index]

    def confirm(self, provisional_id: str, persisted: Message) -> None:
        """Swap a provisional entry for the row the backend stored.

        If the feed already delivered the persisted row, the provisional
        entry is simply dropped.
        """
        self.discard(provisional_id)
        self.insert(persisted)
