"""DashboardService — read-only home screen figures for either role.

Merchants see revenue (delivered order totals) and their product count;
clients see how many lines sit in their cart and how many favorites they
keep. Both see order tallies scoped the same way the order list is.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_cart.domain.repository import CartRepositoryProtocol, FavoriteRepositoryProtocol
from src.mk_cart.infrastructure.persistence import CartRepository, FavoriteRepository
from src.mk_common.identity import Identity
from src.mk_dashboard.application.schemas import DashboardStatsResponse
from src.mk_order.application.schemas import OrderCountsResponse
from src.mk_order.domain.models import OrderCounts
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_order.infrastructure.persistence import OrderRepository


class DashboardService:
    def __init__(
        self,
        order_repo: OrderRepositoryProtocol | None = None,
        cart_repo: CartRepositoryProtocol | None = None,
        favorite_repo: FavoriteRepositoryProtocol | None = None,
    ) -> None:
        self._orders: OrderRepositoryProtocol = order_repo or OrderRepository()
        self._cart: CartRepositoryProtocol = cart_repo or CartRepository()
        self._favorites: FavoriteRepositoryProtocol = favorite_repo or FavoriteRepository()

    async def stats(self, identity: Identity, db: AsyncSession) -> DashboardStatsResponse:
        statuses = await self._orders.list_statuses(identity.order_owner_column, identity.id, db)
        response = DashboardStatsResponse(
            role=identity.role,
            orders=OrderCountsResponse.from_domain(OrderCounts.from_statuses(statuses)),
        )
        if identity.is_merchant:
            response.revenue_cents = await self._orders.delivered_revenue(identity.id, db)
            response.product_count = await self._cart.count_products(identity.id, db)
        else:
            response.cart_item_count = await self._cart.count_lines(identity.id, db)
            response.favorite_count = await self._favorites.count(identity.id, db)
        return response
