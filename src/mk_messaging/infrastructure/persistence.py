# src/mk_messaging/infrastructure/persistence.py
"""MessageRepository — raw SQL persistence implementation."""
from collections.abc import Mapping
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.database import backend_errors
from src.mk_messaging.domain.models import Message

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_COLUMNS = "id, from_user, to_user, content, read, created_at"

# Ascending (created_at, id) is the ordering every consumer relies on:
# aggregation tie-breaks and the conversation timeline both assume it.
_LIST_FOR_USER_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM messages
    WHERE from_user = :user_id OR to_user = :user_id
    ORDER BY created_at ASC, id ASC
""")

_LIST_BETWEEN_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM messages
    WHERE (from_user = :user_id AND to_user = :counterpart_id)
       OR (from_user = :counterpart_id AND to_user = :user_id)
    ORDER BY created_at ASC, id ASC
""")

_INSERT_SQL = text(f"""
    INSERT INTO messages (from_user, to_user, content, read)
    VALUES (:from_user, :to_user, :content, FALSE)
    RETURNING {_COLUMNS}
""")

_MARK_READ_SQL = text(f"""
    UPDATE messages
    SET read = TRUE
    WHERE from_user = :from_user AND to_user = :to_user AND read = FALSE
    RETURNING {_COLUMNS}
""")

_DISPLAY_NAMES_SQL = text("""
    SELECT id, display_name FROM profiles
    WHERE id = ANY(CAST(:ids AS VARCHAR[]))
""")


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def row_to_message(row: Any) -> Message:
    """Convert a DB result row to a Message domain object."""
    return Message(
        id=str(row.id),
        from_user=str(row.from_user),
        to_user=str(row.to_user),
        content=row.content,
        read=bool(row.read),
        created_at=row.created_at,
    )


def message_to_row(message: Message) -> Mapping[str, Any]:
    """Shape published on the change feed for a messages row."""
    return {
        "id": message.id,
        "from_user": message.from_user,
        "to_user": message.to_user,
        "content": message.content,
        "read": message.read,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MessageRepository:
    """Concrete implementation of MessageRepositoryProtocol using raw SQL."""

    async def list_for_user(self, user_id: str, db: AsyncSession) -> list[Message]:
        with backend_errors("list messages"):
            result = await db.execute(_LIST_FOR_USER_SQL, {"user_id": user_id})
            rows = result.fetchall()
        return [row_to_message(row) for row in rows]

    async def list_between(
        self, user_id: str, counterpart_id: str, db: AsyncSession
    ) -> list[Message]:
        with backend_errors("load conversation"):
            result = await db.execute(
                _LIST_BETWEEN_SQL,
                {"user_id": user_id, "counterpart_id": counterpart_id},
            )
            rows = result.fetchall()
        return [row_to_message(row) for row in rows]

    async def insert(
        self, from_user: str, to_user: str, content: str, db: AsyncSession
    ) -> Message:
        with backend_errors("send message"):
            result = await db.execute(
                _INSERT_SQL,
                {"from_user": from_user, "to_user": to_user, "content": content},
            )
            row = result.fetchone()
        return row_to_message(row)

    async def mark_read(
        self, from_user: str, to_user: str, db: AsyncSession
    ) -> list[Message]:
        """Flip read=TRUE on unread messages from ``from_user``; returns the flipped rows."""
        with backend_errors("mark messages read"):
            result = await db.execute(
                _MARK_READ_SQL, {"from_user": from_user, "to_user": to_user}
            )
            rows = result.fetchall()
        return [row_to_message(row) for row in rows]

    async def display_names(
        self, user_ids: list[str], db: AsyncSession
    ) -> dict[str, str | None]:
        """profiles.display_name per id; ids without a profile are left out."""
        if not user_ids:
            return {}
        with backend_errors("load profiles"):
            result = await db.execute(_DISPLAY_NAMES_SQL, {"ids": list(user_ids)})
            rows = result.fetchall()
        return {str(row.id): row.display_name for row in rows}
