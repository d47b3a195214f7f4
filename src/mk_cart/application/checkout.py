# src/mk_cart/application/checkout.py
"""CheckoutCoordinator — turn a client's cart into one order per line.

Lines are submitted one by one, each in its own commit; there is no
multi-row atomicity. The cart is cleared only when every line became an
order. Otherwise the lines that were ordered are removed, the rest stay
in the cart, and PartialCheckoutError lists the failed line ids.
Successfully created orders are not rolled back. Ordered lines that
cannot be removed from the cart are reported, so a retry does not order
them twice.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_cart.domain.models import CartLine
from src.mk_cart.domain.repository import CartRepositoryProtocol
from src.mk_cart.infrastructure.persistence import CartRepository
from src.mk_common.database import commit, rollback
from src.mk_common.enums import FeedEventType, FeedTable
from src.mk_common.errors import (
    AppError,
    CartItemNotFoundError,
    CartNotClearedError,
    EmptyCartError,
    PartialCheckoutError,
    TransientBackendError,
)
from src.mk_order.domain.models import Order
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_order.infrastructure.persistence import OrderRepository, order_to_row
from src.mk_realtime.domain.events import ChangeEvent
from src.mk_realtime.feed.factory import publish_committed
from src.mk_realtime.feed.protocol import ChangeFeedProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    order_ids: list[str]
    total: int  # cents


def _order_events(orders: list[Order]) -> list[ChangeEvent]:
    return [
        ChangeEvent(FeedTable.ORDERS.value, FeedEventType.INSERT, dict(order_to_row(order)))
        for order in orders
    ]


def _cart_events(client_id: str, item_ids: list[str]) -> list[ChangeEvent]:
    return [
        ChangeEvent(
            FeedTable.CART_ITEMS.value,
            FeedEventType.DELETE,
            {"id": item_id, "client_id": client_id},
        )
        for item_id in item_ids
    ]


class CheckoutCoordinator:
    def __init__(
        self,
        feed: ChangeFeedProtocol,
        order_repo: OrderRepositoryProtocol | None = None,
        cart_repo: CartRepositoryProtocol | None = None,
    ) -> None:
        self._feed = feed
        self._orders: OrderRepositoryProtocol = order_repo or OrderRepository()
        self._cart: CartRepositoryProtocol = cart_repo or CartRepository()

    async def checkout(
        self, client_id: str, lines: list[CartLine], db: AsyncSession
    ) -> CheckoutResult:
        if not lines:
            raise EmptyCartError()
        for line in lines:
            if line.item.client_id != client_id:
                raise CartItemNotFoundError(line.item.id)
        drafts = [line.to_draft() for line in lines]

        created: list[Order] = []
        ordered_line_ids: list[str] = []
        failed_line_ids: list[str] = []
        for draft in drafts:
            try:
                order = await self._orders.insert(draft, db)
                await commit(db, f"order for cart line {draft.line_id}")
            except AppError as exc:
                await rollback(db)
                logger.warning(
                    "Checkout line %s failed for client %s: %s",
                    draft.line_id,
                    client_id,
                    exc.message,
                )
                failed_line_ids.append(draft.line_id)
                continue
            created.append(order)
            ordered_line_ids.append(draft.line_id)

        await publish_committed(self._feed, _order_events(created))
        created_ids = [order.id for order in created]

        if failed_line_ids:
            removed = await self._remove_ordered_lines(client_id, ordered_line_ids, db)
            uncleared = [] if removed is not None else ordered_line_ids
            await publish_committed(self._feed, _cart_events(client_id, removed or []))
            raise PartialCheckoutError(failed_line_ids, created_ids, uncleared)

        try:
            cleared = await self._cart.clear(client_id, db)
            await commit(db, f"clear cart of {client_id}")
        except TransientBackendError as exc:
            await rollback(db)
            logger.warning("Cart of %s not cleared after checkout: %s", client_id, exc.message)
            raise CartNotClearedError(created_ids, ordered_line_ids) from exc
        await publish_committed(self._feed, _cart_events(client_id, cleared))
        logger.info("Checkout for client %s created %d orders", client_id, len(created))
        return CheckoutResult(
            order_ids=created_ids,
            total=sum(draft.total for draft in drafts),
        )

    async def _remove_ordered_lines(
        self, client_id: str, line_ids: list[str], db: AsyncSession
    ) -> list[str] | None:
        """Drop ordered lines from the cart. Returns None when that failed."""
        if not line_ids:
            return []
        try:
            removed = await self._cart.remove_items(line_ids, client_id, db)
            await commit(db, f"remove ordered lines of {client_id}")
        except TransientBackendError as exc:
            await rollback(db)
            logger.warning(
                "Could not drop ordered lines %s from cart of %s: %s",
                line_ids,
                client_id,
                exc.message,
            )
            return None
        return removed
