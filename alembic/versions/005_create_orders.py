"""005: create orders table

Revision ID: 005
Revises: 004
Create Date: 2026-10-12
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id              VARCHAR(36)     PRIMARY KEY DEFAULT gen_random_uuid()::text,
            client_id       VARCHAR(36)     NOT NULL REFERENCES profiles (id),
            merchant_id     VARCHAR(36)     NOT NULL REFERENCES profiles (id),
            product_id      VARCHAR(36)     NOT NULL REFERENCES products (id),
            quantity        INT             NOT NULL,
            total           BIGINT          NOT NULL,
            status          VARCHAR(20)     NOT NULL DEFAULT 'pending',
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT clock_timestamp(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT clock_timestamp(),
            CONSTRAINT ck_orders_quantity   CHECK (quantity >= 1),
            CONSTRAINT ck_orders_total      CHECK (total >= 0),
            CONSTRAINT ck_orders_status     CHECK (
                status IN ('pending', 'confirmed', 'shipped', 'delivered', 'cancelled')
            )
        );
    """)
    op.execute("CREATE INDEX idx_orders_client ON orders (client_id, created_at DESC);")
    op.execute("CREATE INDEX idx_orders_merchant ON orders (merchant_id, created_at DESC);")
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON COLUMN orders.total IS 'Unit price snapshot x quantity in cents, frozen at creation';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
