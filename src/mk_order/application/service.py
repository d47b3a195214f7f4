"""OrderApplicationService — request/response view of the order lifecycle.

Every call builds a fresh OrderLifecycleEngine for the caller; the
long-lived, feed-driven engine lives in a realtime SyncSession.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.enums import OrderStatus
from src.mk_common.identity import Identity
from src.mk_order.application.engine import OrderLifecycleEngine
from src.mk_order.application.schemas import (
    OrderCountsResponse,
    OrderListResponse,
    OrderResponse,
    TransitionResponse,
)
from src.mk_order.domain.models import OrderCounts
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_order.infrastructure.persistence import OrderRepository
from src.mk_realtime.feed.protocol import ChangeFeedProtocol


class OrderApplicationService:
    def __init__(
        self,
        feed: ChangeFeedProtocol,
        repo: OrderRepositoryProtocol | None = None,
    ) -> None:
        self._feed = feed
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()

    def _engine(self, identity: Identity) -> OrderLifecycleEngine:
        return OrderLifecycleEngine(identity, self._feed, self._repo)

    async def list_orders(
        self, identity: Identity, status: OrderStatus | None, db: AsyncSession
    ) -> OrderListResponse:
        engine = self._engine(identity)
        await engine.load(db)
        return OrderListResponse(
            items=[OrderResponse.from_domain(o) for o in engine.orders_with_status(status)],
            counts=OrderCountsResponse.from_domain(engine.counts),
        )

    async def get_counts(self, identity: Identity, db: AsyncSession) -> OrderCountsResponse:
        counts = await self._engine(identity).refresh_counts(db)
        return OrderCountsResponse.from_domain(counts)

    async def transition(
        self,
        identity: Identity,
        order_id: str,
        status: OrderStatus,
        db: AsyncSession,
    ) -> TransitionResponse:
        result = await self._engine(identity).request_transition(order_id, status, identity, db)
        return TransitionResponse(
            order=OrderResponse.from_domain(result.order),
            merchant_counts=_counts_or_none(result.merchant_counts),
            client_counts=_counts_or_none(result.client_counts),
        )


def _counts_or_none(counts: OrderCounts | None) -> OrderCountsResponse | None:
    return OrderCountsResponse.from_domain(counts) if counts is not None else None
