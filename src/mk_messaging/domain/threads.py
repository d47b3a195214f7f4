"""Fold a flat message log into one ConversationThread per counterpart.

Always recomputed from the whole message set; there is no running
unread counter that could drift when a feed event is lost.
"""
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from src.mk_messaging.domain.models import ConversationThread, LastMessage, Message

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(message: Message) -> datetime:
    return message.created_at or _EPOCH


def aggregate(
    messages: Iterable[Message],
    current_user_id: str,
    names: Mapping[str, str | None] | None = None,
) -> list[ConversationThread]:
    """Group ``messages`` by counterpart of ``current_user_id``.

    ``messages`` is taken in delivery order. The last message of a thread
    is the one with the greatest ``created_at``; on equal timestamps the
    one delivered later wins, matching an ascending server-side ordering.
    Threads come back most-recent first. ``names`` maps counterpart ids to
    display names where they are known.
    """
    latest: dict[str, Message] = {}
    unread: dict[str, int] = {}

    for message in messages:
        if not message.involves(current_user_id):
            continue
        counterpart = message.counterpart_of(current_user_id)
        current = latest.get(counterpart)
        if current is None or _sort_key(message) >= _sort_key(current):
            latest[counterpart] = message
        unread[counterpart] = unread.get(counterpart, 0) + int(
            message.is_unread_for(current_user_id)
        )

    threads = [
        ConversationThread(
            counterpart_id=counterpart,
            last_message=LastMessage(
                content=message.content,
                created_at=message.created_at,
                from_user=message.from_user,
            ),
            unread_count=unread[counterpart],
            counterpart_name=(names or {}).get(counterpart),
        )
        for counterpart, message in latest.items()
    ]
    threads.sort(key=lambda t: t.last_message.created_at or _EPOCH, reverse=True)
    return threads
