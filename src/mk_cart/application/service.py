"""CartApplicationService — cart line management plus checkout.

Every mutating call commits its own transaction; checkout delegates to
CheckoutCoordinator, which commits per order line.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_cart.application.checkout import CheckoutCoordinator
from src.mk_cart.application.schemas import (
    CartItemResponse,
    CartLineResponse,
    CartResponse,
    CheckoutResponse,
    RemoveCartItemResponse,
)
from src.mk_cart.domain.models import ensure_quantity
from src.mk_cart.domain.repository import CartRepositoryProtocol
from src.mk_cart.infrastructure.persistence import CartRepository
from src.mk_common.database import commit, rollback
from src.mk_common.errors import CartItemNotFoundError, ProductNotFoundError
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_realtime.feed.protocol import ChangeFeedProtocol


class CartApplicationService:
    def __init__(
        self,
        feed: ChangeFeedProtocol,
        repo: CartRepositoryProtocol | None = None,
        order_repo: OrderRepositoryProtocol | None = None,
    ) -> None:
        self._repo: CartRepositoryProtocol = repo or CartRepository()
        self._coordinator = CheckoutCoordinator(feed, order_repo=order_repo, cart_repo=self._repo)

    async def get_cart(self, client_id: str, db: AsyncSession) -> CartResponse:
        lines = await self._repo.list_lines(client_id, db)
        return CartResponse(
            items=[CartLineResponse.from_domain(line) for line in lines],
            total_cents=sum(line.subtotal for line in lines),
        )

    async def add_item(
        self, client_id: str, product_id: str, quantity: int, db: AsyncSession
    ) -> CartItemResponse:
        ensure_quantity(quantity)
        if await self._repo.get_product(product_id, db) is None:
            raise ProductNotFoundError(product_id)
        try:
            item = await self._repo.add_item(client_id, product_id, quantity, db)
            await commit(db, "add cart item")
        except Exception:
            await rollback(db)
            raise
        return CartItemResponse.from_domain(item)

    async def update_quantity(
        self, client_id: str, item_id: str, quantity: int, db: AsyncSession
    ) -> CartItemResponse:
        ensure_quantity(quantity)
        try:
            item = await self._repo.update_quantity(item_id, client_id, quantity, db)
            await commit(db, "update cart item")
        except Exception:
            await rollback(db)
            raise
        if item is None:
            raise CartItemNotFoundError(item_id)
        return CartItemResponse.from_domain(item)

    async def remove_item(
        self, client_id: str, item_id: str, db: AsyncSession
    ) -> RemoveCartItemResponse:
        try:
            removed = await self._repo.remove_items([item_id], client_id, db)
            await commit(db, "remove cart item")
        except Exception:
            await rollback(db)
            raise
        if not removed:
            raise CartItemNotFoundError(item_id)
        return RemoveCartItemResponse(id=item_id)

    async def checkout(self, client_id: str, db: AsyncSession) -> CheckoutResponse:
        lines = await self._repo.list_lines(client_id, db)
        result = await self._coordinator.checkout(client_id, lines, db)
        return CheckoutResponse(order_ids=result.order_ids, total_cents=result.total)
