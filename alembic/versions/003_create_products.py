"""003: create products table

Revision ID: 003
Revises: 002
Create Date: 2026-10-12
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE products (
            id              VARCHAR(36)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            merchant_id     VARCHAR(36)     NOT NULL REFERENCES profiles (id),
            title           VARCHAR(200)    NOT NULL,
            description     TEXT,
            price           BIGINT          NOT NULL,
            image_url       TEXT,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_products_price    CHECK (price >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_products_merchant ON products (merchant_id);")
    op.execute("COMMENT ON COLUMN products.price IS 'Unit price in cents';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS products CASCADE;")
