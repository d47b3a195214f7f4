# src/mk_messaging/application/schemas.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.mk_common.errors import MalformedEventError
from src.mk_messaging.domain.models import ConversationThread, Message


class MessageRecord(BaseModel):
    """A messages row as delivered by the change feed, validated on ingestion."""

    model_config = ConfigDict(extra="ignore")

    id: str
    from_user: str
    to_user: str
    content: str
    read: bool = False
    created_at: datetime | None = None

    @field_validator("id", "from_user", "to_user", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        if v is None or str(v) == "":
            raise ValueError("identifier must not be empty")
        return str(v)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MessageRecord":
        try:
            return cls.model_validate(row)
        except PydanticValidationError as exc:
            raise MalformedEventError(f"messages row: {exc.errors()[0]['msg']}") from exc

    def to_domain(self) -> Message:
        return Message(
            id=self.id,
            from_user=self.from_user,
            to_user=self.to_user,
            content=self.content,
            read=self.read,
            created_at=self.created_at,
        )


class SendMessageRequest(BaseModel):
    content: str


class MessageResponse(BaseModel):
    id: str
    from_user: str
    to_user: str
    content: str
    read: bool
    created_at: datetime | None = None
    provisional: bool = False

    @classmethod
    def from_domain(cls, message: Message, provisional: bool = False) -> "MessageResponse":
        return cls(
            id=message.id,
            from_user=message.from_user,
            to_user=message.to_user,
            content=message.content,
            read=message.read,
            created_at=message.created_at,
            provisional=provisional,
        )


class LastMessageResponse(BaseModel):
    content: str
    created_at: datetime | None = None
    from_user: str


class ThreadResponse(BaseModel):
    counterpart_id: str
    counterpart_name: str | None = None
    last_message: LastMessageResponse
    unread_count: int

    @classmethod
    def from_domain(cls, thread: ConversationThread) -> "ThreadResponse":
        return cls(
            counterpart_id=thread.counterpart_id,
            counterpart_name=thread.counterpart_name,
            last_message=LastMessageResponse(
                content=thread.last_message.content,
                created_at=thread.last_message.created_at,
                from_user=thread.last_message.from_user,
            ),
            unread_count=thread.unread_count,
        )


class ThreadListResponse(BaseModel):
    threads: list[ThreadResponse]
    total_unread: int


class ConversationResponse(BaseModel):
    counterpart_id: str
    messages: list[MessageResponse]


class MarkReadResponse(BaseModel):
    counterpart_id: str
    marked_ids: list[str]
