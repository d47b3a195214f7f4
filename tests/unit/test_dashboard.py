"""Unit tests for DashboardService."""
from unittest.mock import AsyncMock

import pytest

from src.mk_common.enums import OrderStatus, Role
from src.mk_common.errors import TransientBackendError
from src.mk_common.identity import Identity
from src.mk_dashboard.application.service import DashboardService


def _make_repos() -> tuple[AsyncMock, AsyncMock, AsyncMock]:
    order_repo = AsyncMock()
    order_repo.list_statuses.return_value = [
        OrderStatus.DELIVERED,
        OrderStatus.DELIVERED,
        OrderStatus.PENDING,
        OrderStatus.CANCELLED,
    ]
    order_repo.delivered_revenue.return_value = 9000
    cart_repo = AsyncMock()
    cart_repo.count_products.return_value = 4
    cart_repo.count_lines.return_value = 3
    favorite_repo = AsyncMock()
    favorite_repo.count.return_value = 5
    return order_repo, cart_repo, favorite_repo


class TestDashboardStats:
    async def test_merchant_sees_revenue_and_products(self) -> None:
        order_repo, cart_repo, favorite_repo = _make_repos()
        db = AsyncMock()
        service = DashboardService(order_repo, cart_repo, favorite_repo)

        stats = await service.stats(Identity("m1", Role.MERCHANT), db)

        assert stats.revenue_cents == 9000
        assert stats.product_count == 4
        assert stats.orders.all == 4
        assert stats.orders.delivered == 2
        assert stats.cart_item_count is None
        order_repo.list_statuses.assert_awaited_once_with("merchant_id", "m1", db)
        favorite_repo.count.assert_not_awaited()

    async def test_client_sees_cart_and_favorites(self) -> None:
        order_repo, cart_repo, favorite_repo = _make_repos()
        db = AsyncMock()
        service = DashboardService(order_repo, cart_repo, favorite_repo)

        stats = await service.stats(Identity("c1", Role.CLIENT), db)

        assert stats.cart_item_count == 3
        assert stats.favorite_count == 5
        assert stats.revenue_cents is None
        assert stats.product_count is None
        order_repo.list_statuses.assert_awaited_once_with("client_id", "c1", db)
        order_repo.delivered_revenue.assert_not_awaited()

    async def test_backend_failure_propagates(self) -> None:
        order_repo, cart_repo, favorite_repo = _make_repos()
        order_repo.delivered_revenue.side_effect = TransientBackendError()
        service = DashboardService(order_repo, cart_repo, favorite_repo)

        with pytest.raises(TransientBackendError):
            await service.stats(Identity("m1", Role.MERCHANT), AsyncMock())
