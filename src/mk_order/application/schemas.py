# src/mk_order/application/schemas.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.mk_common.enums import OrderStatus
from src.mk_common.errors import MalformedEventError
from src.mk_order.domain.models import Order, OrderCounts
from src.mk_order.domain.state_machine import next_statuses


class OrderRecord(BaseModel):
    """An orders row as delivered by the change feed, validated on ingestion.

    Update events may carry only the changed columns plus the scoping
    columns; the engine refetches the full row anyway.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    client_id: str | None = None
    merchant_id: str | None = None
    status: OrderStatus | None = None

    @field_validator("id", "client_id", "merchant_id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "OrderRecord":
        try:
            return cls.model_validate(row)
        except PydanticValidationError as exc:
            raise MalformedEventError(f"orders row: {exc.errors()[0]['msg']}") from exc

    def involves(self, user_id: str) -> bool:
        return user_id in (self.client_id, self.merchant_id)


class TransitionRequest(BaseModel):
    status: OrderStatus


class OrderResponse(BaseModel):
    id: str
    client_id: str
    merchant_id: str
    product_id: str
    quantity: int
    total_cents: int
    status: OrderStatus
    next_statuses: list[OrderStatus]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            client_id=order.client_id,
            merchant_id=order.merchant_id,
            product_id=order.product_id,
            quantity=order.quantity,
            total_cents=order.total,
            status=order.status,
            next_statuses=next_statuses(order.status),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderCountsResponse(BaseModel):
    all: int = Field(0, ge=0)
    pending: int = Field(0, ge=0)
    confirmed: int = Field(0, ge=0)
    shipped: int = Field(0, ge=0)
    delivered: int = Field(0, ge=0)

    @classmethod
    def from_domain(cls, counts: OrderCounts) -> "OrderCountsResponse":
        return cls(
            all=counts.all,
            pending=counts.pending,
            confirmed=counts.confirmed,
            shipped=counts.shipped,
            delivered=counts.delivered,
        )


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    counts: OrderCountsResponse


class TransitionResponse(BaseModel):
    order: OrderResponse
    # None when the recount after a committed transition failed
    merchant_counts: OrderCountsResponse | None = None
    client_counts: OrderCountsResponse | None = None
