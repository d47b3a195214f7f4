# src/mk_order/infrastructure/persistence.py
"""OrderRepository — raw SQL persistence implementation."""
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.database import backend_errors
from src.mk_common.enums import OrderStatus
from src.mk_common.identity import Identity
from src.mk_order.domain.models import Order, OrderDraft

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_COLUMNS = (
    "id, client_id, merchant_id, product_id, quantity, total, status, created_at, updated_at"
)

_GET_BY_ID_SQL = text(f"SELECT {_COLUMNS} FROM orders WHERE id = :id")

# Scoping column is fixed per role, never interpolated from input.
_LIST_SQL = {
    column: text(f"""
        SELECT {_COLUMNS}
        FROM orders
        WHERE {column} = :user_id
          AND (CAST(:status AS VARCHAR) IS NULL OR status = :status)
        ORDER BY created_at DESC, id DESC
    """)
    for column in ("client_id", "merchant_id")
}

_STATUSES_SQL = {
    column: text(f"SELECT status FROM orders WHERE {column} = :user_id")
    for column in ("client_id", "merchant_id")
}

# Revenue counts delivered orders only; totals are frozen at checkout.
_REVENUE_SQL = text("""
    SELECT COALESCE(SUM(total), 0) AS revenue
    FROM orders
    WHERE merchant_id = :merchant_id AND status = 'delivered'
""")

_INSERT_SQL = text(f"""
    INSERT INTO orders (client_id, merchant_id, product_id, quantity, total, status)
    VALUES (:client_id, :merchant_id, :product_id, :quantity, :total, :status)
    RETURNING {_COLUMNS}
""")

# Zero rows back means another writer moved the order first.
_CAS_STATUS_SQL = text(f"""
    UPDATE orders
    SET status = :new_status, updated_at = :updated_at
    WHERE id = :id AND status = :expected
    RETURNING {_COLUMNS}
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def row_to_order(row: Any) -> Order:
    """Convert a DB result row to an Order domain object."""
    return Order(
        id=str(row.id),
        client_id=str(row.client_id),
        merchant_id=str(row.merchant_id),
        product_id=str(row.product_id),
        quantity=int(row.quantity),
        total=int(row.total),
        status=OrderStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def order_to_row(order: Order) -> Mapping[str, Any]:
    """Shape published on the change feed for an orders row."""
    return {
        "id": order.id,
        "client_id": order.client_id,
        "merchant_id": order.merchant_id,
        "product_id": order.product_id,
        "quantity": order.quantity,
        "total": order.total,
        "status": order.status.value,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class OrderRepository:
    """Concrete implementation of OrderRepositoryProtocol using raw SQL."""

    async def get_by_id(self, order_id: str, db: AsyncSession) -> Order | None:
        with backend_errors("load order"):
            result = await db.execute(_GET_BY_ID_SQL, {"id": order_id})
            row = result.fetchone()
        return row_to_order(row) if row is not None else None

    async def list_for(
        self, identity: Identity, status: OrderStatus | None, db: AsyncSession
    ) -> list[Order]:
        with backend_errors("list orders"):
            result = await db.execute(
                _LIST_SQL[identity.order_owner_column],
                {"user_id": identity.id, "status": status.value if status else None},
            )
            rows = result.fetchall()
        return [row_to_order(row) for row in rows]

    async def list_statuses(
        self, owner_column: str, user_id: str, db: AsyncSession
    ) -> list[OrderStatus]:
        with backend_errors("count orders"):
            result = await db.execute(_STATUSES_SQL[owner_column], {"user_id": user_id})
            rows = result.fetchall()
        return [OrderStatus(row.status) for row in rows]

    async def delivered_revenue(self, merchant_id: str, db: AsyncSession) -> int:
        with backend_errors("sum delivered revenue"):
            result = await db.execute(_REVENUE_SQL, {"merchant_id": merchant_id})
            row = result.fetchone()
        return int(row.revenue) if row is not None else 0

    async def insert(self, draft: OrderDraft, db: AsyncSession) -> Order:
        with backend_errors("create order"):
            result = await db.execute(
                _INSERT_SQL,
                {
                    "client_id": draft.client_id,
                    "merchant_id": draft.merchant_id,
                    "product_id": draft.product_id,
                    "quantity": draft.quantity,
                    "total": draft.total,
                    "status": draft.status.value,
                },
            )
            row = result.fetchone()
        return row_to_order(row)

    async def compare_and_set_status(
        self,
        order_id: str,
        expected: OrderStatus,
        new_status: OrderStatus,
        updated_at: datetime,
        db: AsyncSession,
    ) -> Order | None:
        with backend_errors("update order status"):
            result = await db.execute(
                _CAS_STATUS_SQL,
                {
                    "id": order_id,
                    "expected": expected.value,
                    "new_status": new_status.value,
                    "updated_at": updated_at,
                },
            )
            row = result.fetchone()
        return row_to_order(row) if row is not None else None
