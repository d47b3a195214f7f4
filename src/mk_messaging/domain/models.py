"""Messaging domain models — pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass
from datetime import datetime


@dataclass
class Message:
    id: str
    from_user: str
    to_user: str
    content: str
    read: bool = False  # false -> true only, set by the recipient
    created_at: datetime | None = None

    def involves(self, user_id: str) -> bool:
        return user_id in (self.from_user, self.to_user)

    def counterpart_of(self, user_id: str) -> str:
        return self.to_user if self.from_user == user_id else self.from_user

    def is_unread_for(self, user_id: str) -> bool:
        return self.to_user == user_id and not self.read


@dataclass(frozen=True)
class LastMessage:
    content: str
    created_at: datetime | None
    from_user: str


@dataclass(frozen=True)
class ConversationThread:
    """Derived summary of everything exchanged with one counterpart."""

    counterpart_id: str
    last_message: LastMessage
    unread_count: int
    counterpart_name: str | None = None  # profiles.display_name
