"""Unit tests for CheckoutCoordinator and CartApplicationService."""
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from src.mk_cart.application.checkout import CheckoutCoordinator
from src.mk_cart.application.service import CartApplicationService
from src.mk_cart.domain.models import CartItem, CartLine, Product
from src.mk_common.enums import FeedEventType, OrderStatus
from src.mk_common.errors import (
    CartItemNotFoundError,
    CartNotClearedError,
    EmptyCartError,
    InvalidQuantityError,
    PartialCheckoutError,
    ProductNotFoundError,
    TransientBackendError,
)
from src.mk_order.domain.models import Order, OrderDraft
from src.mk_realtime.domain.events import RowFilter
from src.mk_realtime.feed.memory import InMemoryChangeFeed

_T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _make_line(item_id: str, **kwargs: Any) -> CartLine:
    return CartLine(
        item=CartItem(
            id=item_id,
            client_id=kwargs.get("client_id", "c1"),
            product_id=kwargs.get("product_id", f"p-{item_id}"),
            quantity=kwargs.get("quantity", 2),
        ),
        product=Product(
            id=kwargs.get("product_id", f"p-{item_id}"),
            merchant_id=kwargs.get("merchant_id", "m1"),
            title="Widget",
            price=kwargs.get("price", 1250),
        ),
    )


def _order_for(draft: OrderDraft, order_id: str) -> Order:
    return Order(
        id=order_id,
        client_id=draft.client_id,
        merchant_id=draft.merchant_id,
        product_id=draft.product_id,
        quantity=draft.quantity,
        total=draft.total,
        status=OrderStatus.PENDING,
        created_at=_T0,
        updated_at=_T0,
    )


def _make_order_repo(fail_line_ids: set[str] | None = None) -> AsyncMock:
    repo = AsyncMock()
    fail_line_ids = fail_line_ids or set()

    async def insert(draft: OrderDraft, db: Any) -> Order:
        if draft.line_id in fail_line_ids:
            raise TransientBackendError()
        return _order_for(draft, f"order-{draft.line_id}")

    repo.insert.side_effect = insert
    return repo


def _make_cart_repo(lines: list[CartLine] | None = None) -> AsyncMock:
    repo = AsyncMock()
    repo.list_lines.return_value = lines or []

    async def remove_items(item_ids: list[str], client_id: str, db: Any) -> list[str]:
        return list(item_ids)

    repo.remove_items.side_effect = remove_items
    repo.clear.return_value = [line.item.id for line in lines or []]
    return repo


class TestCheckoutCoordinator:
    async def test_empty_cart_fails_before_any_call(self) -> None:
        order_repo, cart_repo = _make_order_repo(), _make_cart_repo()
        coordinator = CheckoutCoordinator(InMemoryChangeFeed(), order_repo, cart_repo)

        with pytest.raises(EmptyCartError):
            await coordinator.checkout("c1", [], AsyncMock())
        order_repo.insert.assert_not_awaited()
        cart_repo.clear.assert_not_awaited()

    async def test_all_lines_succeed_clears_cart(self) -> None:
        lines = [_make_line("l1"), _make_line("l2", price=500, quantity=1)]
        order_repo, cart_repo = _make_order_repo(), _make_cart_repo(lines)
        db = AsyncMock()
        coordinator = CheckoutCoordinator(InMemoryChangeFeed(), order_repo, cart_repo)

        result = await coordinator.checkout("c1", lines, db)

        assert result.order_ids == ["order-l1", "order-l2"]
        assert result.total == 2 * 1250 + 500
        cart_repo.clear.assert_awaited_once_with("c1", db)
        cart_repo.remove_items.assert_not_awaited()

    async def test_order_snapshots_line_price(self) -> None:
        line = _make_line("l1", price=999, quantity=3)
        order_repo = _make_order_repo()
        coordinator = CheckoutCoordinator(InMemoryChangeFeed(), order_repo, _make_cart_repo([line]))

        await coordinator.checkout("c1", [line], AsyncMock())

        draft = order_repo.insert.await_args.args[0]
        assert draft.total == 2997
        assert draft.status == OrderStatus.PENDING
        assert draft.merchant_id == "m1"

    async def test_middle_line_failure_is_partial(self) -> None:
        lines = [_make_line("l1"), _make_line("l2"), _make_line("l3")]
        order_repo = _make_order_repo(fail_line_ids={"l2"})
        cart_repo = _make_cart_repo(lines)
        db = AsyncMock()
        coordinator = CheckoutCoordinator(InMemoryChangeFeed(), order_repo, cart_repo)

        with pytest.raises(PartialCheckoutError) as exc_info:
            await coordinator.checkout("c1", lines, db)

        assert exc_info.value.failed_line_ids == ["l2"]
        assert exc_info.value.created_order_ids == ["order-l1", "order-l3"]
        assert exc_info.value.data == {
            "failed_line_ids": ["l2"],
            "created_order_ids": ["order-l1", "order-l3"],
            "uncleared_line_ids": [],
        }
        assert order_repo.insert.await_count == 3
        cart_repo.remove_items.assert_awaited_once_with(["l1", "l3"], "c1", db)
        cart_repo.clear.assert_not_awaited()
        db.rollback.assert_awaited()

    async def test_partial_failure_publishes_created_orders_only(self) -> None:
        feed = InMemoryChangeFeed()
        orders = await feed.subscribe("orders", RowFilter.where(client_id="c1"))
        cart = await feed.subscribe("cart_items", RowFilter.where(client_id="c1"))
        lines = [_make_line("l1"), _make_line("l2"), _make_line("l3")]
        coordinator = CheckoutCoordinator(feed, _make_order_repo({"l2"}), _make_cart_repo(lines))

        with pytest.raises(PartialCheckoutError):
            await coordinator.checkout("c1", lines, AsyncMock())

        order_events = aiter(orders)
        assert [(await anext(order_events)).row["id"] for _ in range(2)] == ["order-l1", "order-l3"]
        cart_events = aiter(cart)
        first = await anext(cart_events)
        assert first.event_type == FeedEventType.DELETE
        assert first.row["id"] == "l1"

    async def test_remaining_lines_stay_when_removal_fails(self) -> None:
        lines = [_make_line("l1"), _make_line("l2")]
        cart_repo = _make_cart_repo(lines)
        cart_repo.remove_items.side_effect = TransientBackendError()
        coordinator = CheckoutCoordinator(InMemoryChangeFeed(), _make_order_repo({"l2"}), cart_repo)

        with pytest.raises(PartialCheckoutError) as exc_info:
            await coordinator.checkout("c1", lines, AsyncMock())
        assert exc_info.value.created_order_ids == ["order-l1"]
        assert exc_info.value.uncleared_line_ids == ["l1"]
        assert exc_info.value.data["uncleared_line_ids"] == ["l1"]
        assert "still in cart: l1" in exc_info.value.message

    async def test_lost_commit_counts_as_failed_line(self) -> None:
        lines = [_make_line("l1"), _make_line("l2"), _make_line("l3")]
        cart_repo = _make_cart_repo(lines)
        db = AsyncMock()
        db.commit.side_effect = [
            None,
            OperationalError("COMMIT", {}, Exception("connection reset")),
            None,
            None,
        ]
        coordinator = CheckoutCoordinator(InMemoryChangeFeed(), _make_order_repo(), cart_repo)

        with pytest.raises(PartialCheckoutError) as exc_info:
            await coordinator.checkout("c1", lines, db)

        assert exc_info.value.failed_line_ids == ["l2"]
        assert exc_info.value.created_order_ids == ["order-l1", "order-l3"]
        cart_repo.remove_items.assert_awaited_once_with(["l1", "l3"], "c1", db)
        db.rollback.assert_awaited()

    async def test_failed_clear_reports_ordered_lines(self) -> None:
        feed = InMemoryChangeFeed()
        cart = await feed.subscribe("cart_items", RowFilter.where(client_id="c1"))
        lines = [_make_line("l1"), _make_line("l2")]
        cart_repo = _make_cart_repo(lines)
        cart_repo.clear.side_effect = TransientBackendError()
        db = AsyncMock()
        coordinator = CheckoutCoordinator(feed, _make_order_repo(), cart_repo)

        with pytest.raises(CartNotClearedError) as exc_info:
            await coordinator.checkout("c1", lines, db)

        assert exc_info.value.created_order_ids == ["order-l1", "order-l2"]
        assert exc_info.value.data["uncleared_line_ids"] == ["l1", "l2"]
        assert exc_info.value.http_status == 503
        db.rollback.assert_awaited()
        assert cart._queue.empty()

    async def test_invalid_quantity_fails_before_any_call(self) -> None:
        lines = [_make_line("l1"), _make_line("l2", quantity=0)]
        order_repo = _make_order_repo()
        coordinator = CheckoutCoordinator(InMemoryChangeFeed(), order_repo, _make_cart_repo(lines))

        with pytest.raises(InvalidQuantityError):
            await coordinator.checkout("c1", lines, AsyncMock())
        order_repo.insert.assert_not_awaited()

    async def test_foreign_line_rejected(self) -> None:
        order_repo = _make_order_repo()
        coordinator = CheckoutCoordinator(InMemoryChangeFeed(), order_repo, _make_cart_repo())

        with pytest.raises(CartItemNotFoundError):
            await coordinator.checkout("c1", [_make_line("l1", client_id="c2")], AsyncMock())
        order_repo.insert.assert_not_awaited()


class TestCartApplicationService:
    async def test_get_cart_totals(self) -> None:
        lines = [_make_line("l1"), _make_line("l2", price=100, quantity=5)]
        service = CartApplicationService(
            InMemoryChangeFeed(), _make_cart_repo(lines), _make_order_repo()
        )

        cart = await service.get_cart("c1", AsyncMock())

        assert cart.total_cents == 2500 + 500
        assert len(cart.items) == 2

    async def test_add_item_rejects_zero_quantity(self) -> None:
        cart_repo = _make_cart_repo()
        service = CartApplicationService(InMemoryChangeFeed(), cart_repo, _make_order_repo())

        with pytest.raises(InvalidQuantityError):
            await service.add_item("c1", "p1", 0, AsyncMock())
        cart_repo.add_item.assert_not_awaited()

    async def test_add_item_unknown_product(self) -> None:
        cart_repo = _make_cart_repo()
        cart_repo.get_product.return_value = None
        service = CartApplicationService(InMemoryChangeFeed(), cart_repo, _make_order_repo())

        with pytest.raises(ProductNotFoundError):
            await service.add_item("c1", "p1", 1, AsyncMock())

    async def test_add_item_commits(self) -> None:
        cart_repo = _make_cart_repo()
        cart_repo.get_product.return_value = Product(id="p1", merchant_id="m1", title="W", price=10)
        cart_repo.add_item.return_value = CartItem(
            id="l1", client_id="c1", product_id="p1", quantity=3
        )
        db = AsyncMock()
        service = CartApplicationService(InMemoryChangeFeed(), cart_repo, _make_order_repo())

        item = await service.add_item("c1", "p1", 3, db)

        assert item.quantity == 3
        db.commit.assert_awaited_once()

    async def test_remove_missing_item(self) -> None:
        cart_repo = _make_cart_repo()
        cart_repo.remove_items.side_effect = None
        cart_repo.remove_items.return_value = []
        service = CartApplicationService(InMemoryChangeFeed(), cart_repo, _make_order_repo())

        with pytest.raises(CartItemNotFoundError):
            await service.remove_item("c1", "nope", AsyncMock())

    async def test_checkout_uses_current_lines(self) -> None:
        lines = [_make_line("l1")]
        service = CartApplicationService(
            InMemoryChangeFeed(), _make_cart_repo(lines), _make_order_repo()
        )

        response = await service.checkout("c1", AsyncMock())

        assert response.order_ids == ["order-l1"]
        assert response.total_cents == 2500
