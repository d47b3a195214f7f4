# src/mk_messaging/domain/repository.py
"""MessageRepository Protocol — interface contract for persistence layer."""
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_messaging.domain.models import Message


class MessageRepositoryProtocol(Protocol):
    async def list_for_user(self, user_id: str, db: AsyncSession) -> list[Message]: ...

    async def list_between(
        self, user_id: str, counterpart_id: str, db: AsyncSession
    ) -> list[Message]: ...

    async def insert(
        self, from_user: str, to_user: str, content: str, db: AsyncSession
    ) -> Message: ...

    async def mark_read(
        self, from_user: str, to_user: str, db: AsyncSession
    ) -> list[Message]: ...

    async def display_names(
        self, user_ids: list[str], db: AsyncSession
    ) -> dict[str, str | None]: ...
