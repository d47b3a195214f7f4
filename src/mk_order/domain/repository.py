# src/mk_order/domain/repository.py
"""OrderRepository Protocol — interface contract for persistence layer."""
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.enums import OrderStatus
from src.mk_common.identity import Identity
from src.mk_order.domain.models import Order, OrderDraft


class OrderRepositoryProtocol(Protocol):
    async def get_by_id(self, order_id: str, db: AsyncSession) -> Order | None: ...

    async def list_for(
        self, identity: Identity, status: OrderStatus | None, db: AsyncSession
    ) -> list[Order]: ...

    async def list_statuses(
        self, owner_column: str, user_id: str, db: AsyncSession
    ) -> list[OrderStatus]: ...

    async def delivered_revenue(self, merchant_id: str, db: AsyncSession) -> int: ...

    async def insert(self, draft: OrderDraft, db: AsyncSession) -> Order: ...

    async def compare_and_set_status(
        self,
        order_id: str,
        expected: OrderStatus,
        new_status: OrderStatus,
        updated_at: datetime,
        db: AsyncSession,
    ) -> Order | None: ...
