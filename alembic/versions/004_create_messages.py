"""004: create messages table

Revision ID: 004
Revises: 003
Create Date: 2026-10-12
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE messages (
            id              VARCHAR(36)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            from_user       VARCHAR(36)     NOT NULL REFERENCES profiles (id),
            to_user         VARCHAR(36)     NOT NULL REFERENCES profiles (id),
            content         TEXT            NOT NULL,
            read            BOOLEAN         NOT NULL DEFAULT FALSE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT clock_timestamp(),
            CONSTRAINT ck_messages_content  CHECK (LENGTH(BTRIM(content)) > 0),
            CONSTRAINT ck_messages_parties  CHECK (from_user <> to_user)
        );
    """)
    op.execute("CREATE INDEX idx_messages_from ON messages (from_user, created_at);")
    op.execute("CREATE INDEX idx_messages_to_unread ON messages (to_user, read, created_at);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS messages CASCADE;")
