"""006: create cart_items and favorites tables

Revision ID: 006
Revises: 005
Create Date: 2026-10-12
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE cart_items (
            id              VARCHAR(36)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            client_id       VARCHAR(36)     NOT NULL REFERENCES profiles (id),
            product_id      VARCHAR(36)     NOT NULL REFERENCES products (id) ON DELETE CASCADE,
            quantity        INT             NOT NULL DEFAULT 1,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT clock_timestamp(),
            CONSTRAINT uq_cart_items_client_product UNIQUE (client_id, product_id),
            CONSTRAINT ck_cart_items_quantity       CHECK (quantity >= 1)
        );
    """)
    op.execute("""
        CREATE TABLE favorites (
            id              VARCHAR(36)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            client_id       VARCHAR(36)     NOT NULL REFERENCES profiles (id),
            product_id      VARCHAR(36)     NOT NULL REFERENCES products (id) ON DELETE CASCADE,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_favorites_client_product UNIQUE (client_id, product_id)
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS favorites CASCADE;")
    op.execute("DROP TABLE IF EXISTS cart_items CASCADE;")
