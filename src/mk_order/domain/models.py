"""Order domain models — pure dataclasses, no SQLAlchemy dependency."""
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from src.mk_common.enums import OrderStatus


@dataclass
class Order:
    id: str
    client_id: str
    merchant_id: str
    product_id: str
    quantity: int  # >= 1
    total: int  # cents; unit price snapshot x quantity, frozen at creation
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def involves(self, user_id: str) -> bool:
        return user_id in (self.client_id, self.merchant_id)

    def with_status(self, status: OrderStatus, updated_at: datetime) -> "Order":
        return replace(self, status=status, updated_at=updated_at)


@dataclass(frozen=True)
class OrderDraft:
    """An order about to be created from one cart line."""

    line_id: str
    client_id: str
    merchant_id: str
    product_id: str
    quantity: int
    total: int
    status: OrderStatus = OrderStatus.PENDING


@dataclass(frozen=True)
class OrderCounts:
    all: int = 0
    pending: int = 0
    confirmed: int = 0
    shipped: int = 0
    delivered: int = 0

    @classmethod
    def from_statuses(cls, statuses: Iterable[OrderStatus | str]) -> "OrderCounts":
        """Tally from scratch. ``all`` includes cancelled orders."""
        tally = {status: 0 for status in OrderStatus}
        total = 0
        for status in statuses:
            tally[OrderStatus(status)] += 1
            total += 1
        return cls(
            all=total,
            pending=tally[OrderStatus.PENDING],
            confirmed=tally[OrderStatus.CONFIRMED],
            shipped=tally[OrderStatus.SHIPPED],
            delivered=tally[OrderStatus.DELIVERED],
        )
