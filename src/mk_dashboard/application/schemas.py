# src/mk_dashboard/application/schemas.py
from pydantic import BaseModel

from src.mk_common.enums import Role
from src.mk_order.application.schemas import OrderCountsResponse


class DashboardStatsResponse(BaseModel):
    """Order tallies for either role, plus the role's own figures.

    Merchant-only fields are None for clients and vice versa.
    """

    role: Role
    orders: OrderCountsResponse
    revenue_cents: int | None = None
    product_count: int | None = None
    cart_item_count: int | None = None
    favorite_count: int | None = None
