"""HTTP surface tests: auth, role checks and the AppError envelope."""
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from src.main import app
from src.mk_cart.api.favorites_router import get_favorites_service
from src.mk_cart.api.router import get_cart_service
from src.mk_cart.application.favorites import FavoritesApplicationService
from src.mk_cart.application.service import CartApplicationService
from src.mk_cart.domain.models import Favorite, Product
from src.mk_common.database import get_db_session
from src.mk_common.enums import OrderStatus, Role
from src.mk_dashboard.api.router import get_dashboard_service
from src.mk_dashboard.application.service import DashboardService
from src.mk_gateway.auth.jwt_handler import create_access_token
from src.mk_order.api.router import get_order_service
from src.mk_order.application.service import OrderApplicationService
from src.mk_order.domain.models import Order
from src.mk_realtime.feed.memory import InMemoryChangeFeed

_T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _auth(user_id: str, role: Role) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


async def _fake_db() -> AsyncGenerator[AsyncMock, None]:
    yield AsyncMock()


@pytest.fixture
def order_repo() -> Iterator[AsyncMock]:
    repo = AsyncMock()
    order = Order(
        id="o1", client_id="c1", merchant_id="m1", product_id="p1",
        quantity=1, total=500, status=OrderStatus.SHIPPED, created_at=_T0, updated_at=_T0,
    )
    repo.get_by_id.return_value = order
    repo.list_for.return_value = [order]
    repo.list_statuses.return_value = [OrderStatus.SHIPPED]
    feed = InMemoryChangeFeed()
    app.dependency_overrides[get_db_session] = _fake_db
    app.dependency_overrides[get_order_service] = lambda: OrderApplicationService(feed, repo)
    cart_repo = AsyncMock()
    cart_repo.list_lines.return_value = []
    cart_repo.get_product.return_value = None
    cart_service = CartApplicationService(feed, cart_repo, repo)
    app.dependency_overrides[get_cart_service] = lambda: cart_service
    repo.cart_repo = cart_repo
    yield repo
    app.dependency_overrides.clear()


@pytest.fixture
def favorite_repo(order_repo: AsyncMock) -> AsyncMock:
    repo = AsyncMock()
    repo.list_for.return_value = [
        Favorite(
            id="f1",
            client_id="c1",
            product=Product(id="p1", merchant_id="m1", title="Mug", price=1500),
        )
    ]
    repo.remove.return_value = False
    repo.count.return_value = 1
    cart_repo = order_repo.cart_repo
    cart_repo.count_lines.return_value = 2
    cart_repo.count_products.return_value = 7
    order_repo.delivered_revenue.return_value = 4200
    cart_service = CartApplicationService(InMemoryChangeFeed(), cart_repo, order_repo)
    app.dependency_overrides[get_favorites_service] = lambda: FavoritesApplicationService(
        cart_service, repo, cart_repo
    )
    app.dependency_overrides[get_dashboard_service] = lambda: DashboardService(
        order_repo, cart_repo, repo
    )
    return repo


async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_missing_token_is_401(client: AsyncClient, order_repo: AsyncMock) -> None:
    resp = await client.get("/api/v1/orders")
    assert resp.status_code == 401


async def test_list_orders(client: AsyncClient, order_repo: AsyncMock) -> None:
    resp = await client.get("/api/v1/orders", headers=_auth("m1", Role.MERCHANT))
    assert resp.status_code == 200
    body = resp.json()
    assert body["items"][0]["status"] == "shipped"
    assert body["items"][0]["next_statuses"] == ["delivered", "cancelled"]
    assert body["counts"]["shipped"] == 1


async def test_invalid_transition_uses_error_envelope(
    client: AsyncClient, order_repo: AsyncMock
) -> None:
    resp = await client.post(
        "/api/v1/orders/o1/transition",
        json={"status": "pending"},
        headers=_auth("m1", Role.MERCHANT),
    )
    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == 4031
    assert body["data"] == {"order_id": "o1", "current": "shipped", "requested": "pending"}
    assert body["request_id"].startswith("req_")
    order_repo.compare_and_set_status.assert_not_awaited()


async def test_client_cannot_transition(client: AsyncClient, order_repo: AsyncMock) -> None:
    resp = await client.post(
        "/api/v1/orders/o1/transition",
        json={"status": "delivered"},
        headers=_auth("c1", Role.CLIENT),
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == 4030


async def test_cart_is_client_only(client: AsyncClient, order_repo: AsyncMock) -> None:
    resp = await client.get("/api/v1/cart", headers=_auth("m1", Role.MERCHANT))
    assert resp.status_code == 403
    assert resp.json()["code"] == 1004


async def test_checkout_empty_cart(client: AsyncClient, order_repo: AsyncMock) -> None:
    resp = await client.post("/api/v1/cart/checkout", headers=_auth("c1", Role.CLIENT))
    assert resp.status_code == 422
    assert resp.json()["code"] == 3001
    order_repo.insert.assert_not_awaited()


async def test_request_id_header_matches_error_envelope(
    client: AsyncClient, order_repo: AsyncMock
) -> None:
    resp = await client.post("/api/v1/cart/checkout", headers=_auth("c1", Role.CLIENT))
    assert resp.headers["X-Request-ID"] == resp.json()["request_id"]


async def test_list_favorites(client: AsyncClient, favorite_repo: AsyncMock) -> None:
    resp = await client.get("/api/v1/favorites", headers=_auth("c1", Role.CLIENT))
    assert resp.status_code == 200
    item = resp.json()["items"][0]
    assert item["product_id"] == "p1"
    assert item["unit_price_cents"] == 1500


async def test_favorite_unknown_product(client: AsyncClient, favorite_repo: AsyncMock) -> None:
    resp = await client.post(
        "/api/v1/favorites", json={"product_id": "nope"}, headers=_auth("c1", Role.CLIENT)
    )
    assert resp.status_code == 404
    assert resp.json()["code"] == 3004
    favorite_repo.add.assert_not_awaited()


async def test_remove_missing_favorite(client: AsyncClient, favorite_repo: AsyncMock) -> None:
    resp = await client.delete("/api/v1/favorites/p9", headers=_auth("c1", Role.CLIENT))
    assert resp.status_code == 404
    assert resp.json()["code"] == 3005


async def test_favorite_to_cart_requires_favorite(
    client: AsyncClient, favorite_repo: AsyncMock, order_repo: AsyncMock
) -> None:
    resp = await client.post("/api/v1/favorites/p9/cart", headers=_auth("c1", Role.CLIENT))
    assert resp.status_code == 404
    assert resp.json()["code"] == 3005
    order_repo.cart_repo.add_item.assert_not_awaited()


async def test_favorites_are_client_only(client: AsyncClient, favorite_repo: AsyncMock) -> None:
    resp = await client.get("/api/v1/favorites", headers=_auth("m1", Role.MERCHANT))
    assert resp.status_code == 403


async def test_merchant_dashboard_stats(client: AsyncClient, favorite_repo: AsyncMock) -> None:
    resp = await client.get("/api/v1/dashboard/stats", headers=_auth("m1", Role.MERCHANT))
    assert resp.status_code == 200
    body = resp.json()
    assert body["role"] == "merchant"
    assert body["revenue_cents"] == 4200
    assert body["product_count"] == 7
    assert body["cart_item_count"] is None
    assert body["orders"]["shipped"] == 1


async def test_client_dashboard_stats(client: AsyncClient, favorite_repo: AsyncMock) -> None:
    resp = await client.get("/api/v1/dashboard/stats", headers=_auth("c1", Role.CLIENT))
    assert resp.status_code == 200
    body = resp.json()
    assert body["cart_item_count"] == 2
    assert body["favorite_count"] == 1
    assert body["revenue_cents"] is None
