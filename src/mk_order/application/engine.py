# src/mk_order/application/engine.py
"""OrderLifecycleEngine — one viewer's orders, kept consistent with the backend.

The engine holds the orders visible to its identity (as client or as
merchant) and their OrderCounts. Three things change that view:

  request_transition  merchant action. Applied optimistically, then
                      written with a compare-and-set on the previous
                      status. A rejected write rolls the view back, forces
                      a refetch of the authoritative row and raises
                      OrderConflictError. A failed write rolls back and
                      re-raises. An unconfirmed status is never kept.
                      A confirmed change is published before anything
                      else is read back.
  apply(event)        feed delivery. Only marks the order dirty.
  refresh()           refetches every dirty order and recomputes the
                      counts from scratch.

Counts are always recomputed from the whole order set rather than
adjusted incrementally, so a lost feed event cannot make them drift.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.database import commit, rollback
from src.mk_common.datetime_utils import advance_past
from src.mk_common.enums import FeedEventType, FeedTable, OrderStatus, Role
from src.mk_common.errors import (
    InvalidTransitionError,
    OrderConflictError,
    OrderNotFoundError,
    OrderPermissionError,
    TransientBackendError,
)
from src.mk_common.identity import Identity
from src.mk_order.application.schemas import OrderRecord
from src.mk_order.domain.models import Order, OrderCounts
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_order.domain.state_machine import can_transition
from src.mk_order.infrastructure.persistence import OrderRepository, order_to_row
from src.mk_realtime.domain.events import ChangeEvent
from src.mk_realtime.feed.factory import publish_committed
from src.mk_realtime.feed.protocol import ChangeFeedProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    order: Order
    merchant_counts: OrderCounts | None
    client_counts: OrderCounts | None


def _always_alive() -> bool:
    return True


class OrderLifecycleEngine:
    def __init__(
        self,
        identity: Identity,
        feed: ChangeFeedProtocol,
        repo: OrderRepositoryProtocol | None = None,
    ) -> None:
        self._identity = identity
        self._feed = feed
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._orders: dict[str, Order] = {}
        self._in_flight: set[str] = set()
        self._dirty: set[str] = set()
        self.counts = OrderCounts()

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def orders(self) -> list[Order]:
        """Newest first."""
        return sorted(
            self._orders.values(),
            key=lambda o: (o.created_at is not None, o.created_at, o.id),
            reverse=True,
        )

    def orders_with_status(self, status: OrderStatus | None) -> list[Order]:
        return [o for o in self.orders if status is None or o.status == status]

    def get(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    def is_optimistic(self, order_id: str) -> bool:
        return order_id in self._in_flight

    @property
    def dirty(self) -> frozenset[str]:
        return frozenset(self._dirty)

    # ------------------------------------------------------------------
    # Loading and counts
    # ------------------------------------------------------------------

    async def load(self, db: AsyncSession) -> list[Order]:
        orders = await self._repo.list_for(self._identity, None, db)
        self._orders = {order.id: order for order in orders}
        self.counts = OrderCounts.from_statuses(o.status for o in orders)
        return self.orders

    async def compute_counts(self, role: Role, user_id: str, db: AsyncSession) -> OrderCounts:
        column = "merchant_id" if role == Role.MERCHANT else "client_id"
        return OrderCounts.from_statuses(await self._repo.list_statuses(column, user_id, db))

    async def refresh_counts(self, db: AsyncSession) -> OrderCounts:
        self.counts = await self.compute_counts(self._identity.role, self._identity.id, db)
        return self.counts

    # ------------------------------------------------------------------
    # Merchant transitions
    # ------------------------------------------------------------------

    async def request_transition(
        self,
        order_id: str,
        new_status: OrderStatus | str,
        requester: Identity,
        db: AsyncSession,
    ) -> TransitionResult:
        order = self._orders.get(order_id) or await self._repo.get_by_id(order_id, db)
        if order is None:
            raise OrderNotFoundError(order_id)
        if requester.role != Role.MERCHANT or requester.id != order.merchant_id:
            raise OrderPermissionError(order_id)
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise InvalidTransitionError(order_id, order.status.value, str(new_status)) from None
        if not can_transition(order.status, target):
            raise InvalidTransitionError(order_id, order.status.value, target.value)

        optimistic = order.with_status(target, advance_past(order.updated_at))
        self._orders[order_id] = optimistic
        self._in_flight.add(order_id)
        try:
            confirmed = await self._repo.compare_and_set_status(
                order_id, order.status, target, optimistic.updated_at, db
            )
            if confirmed is None:
                await rollback(db)
            else:
                await commit(db, f"order {order_id} status")
        except Exception:
            await rollback(db)
            self._settle(order)
            raise

        if confirmed is None:
            self._settle(order)
            authoritative = await self._resync(order_id, db)
            current = authoritative.status.value if authoritative is not None else "missing"
            logger.info(
                "Order %s transition %s->%s rejected, authoritative status %s",
                order_id,
                order.status.value,
                target.value,
                current,
            )
            raise OrderConflictError(order_id, current)

        self._settle(confirmed)
        await publish_committed(
            self._feed,
            [
                ChangeEvent(
                    FeedTable.ORDERS.value, FeedEventType.UPDATE, dict(order_to_row(confirmed))
                )
            ],
        )
        merchant_counts, client_counts = await self._recount_both(confirmed, db)
        return TransitionResult(
            order=confirmed,
            merchant_counts=merchant_counts,
            client_counts=client_counts,
        )

    async def _recount_both(
        self, order: Order, db: AsyncSession
    ) -> tuple[OrderCounts | None, OrderCounts | None]:
        """Counts for both sides of a committed transition.

        The status change already stands, so a failed recount is logged and
        reported as missing counts; the viewers' feed refresh recomputes them.
        """
        try:
            merchant_counts = await self.compute_counts(Role.MERCHANT, order.merchant_id, db)
            client_counts = await self.compute_counts(Role.CLIENT, order.client_id, db)
        except TransientBackendError as exc:
            logger.warning(
                "Counts after order %s transition unavailable: %s", order.id, exc.message
            )
            return None, None
        self.counts = merchant_counts if self._identity.is_merchant else client_counts
        return merchant_counts, client_counts

    def _settle(self, order: Order) -> None:
        self._in_flight.discard(order.id)
        if order.involves(self._identity.id):
            self._orders[order.id] = order
        else:
            self._orders.pop(order.id, None)

    async def _resync(self, order_id: str, db: AsyncSession) -> Order | None:
        authoritative = await self._repo.get_by_id(order_id, db)
        if authoritative is None or not authoritative.involves(self._identity.id):
            self._orders.pop(order_id, None)
        else:
            self._orders[order_id] = authoritative
        await self.refresh_counts(db)
        return authoritative

    # ------------------------------------------------------------------
    # Feed-driven refresh
    # ------------------------------------------------------------------

    def apply(self, event: ChangeEvent) -> bool:
        """Mark the order behind a feed event dirty. Returns True if relevant.

        Raises MalformedEventError when the row does not validate.
        """
        record = OrderRecord.from_row(event.row)
        if not record.involves(self._identity.id) and record.id not in self._orders:
            return False
        self._dirty.add(record.id)
        return True

    async def refresh(
        self,
        db: AsyncSession,
        alive: Callable[[], bool] = _always_alive,
    ) -> list[str]:
        """Refetch dirty orders and recompute counts. Returns changed ids.

        Results are dropped if ``alive()`` turns false while fetching.
        Orders with a transition in flight keep their optimistic status;
        the pending write settles them.
        """
        order_ids, self._dirty = self._dirty, set()
        try:
            fetched = {order_id: await self._repo.get_by_id(order_id, db) for order_id in order_ids}
            counts = await self.compute_counts(self._identity.role, self._identity.id, db)
        except Exception:
            self._dirty |= order_ids
            raise
        if not alive():
            logger.debug("Dropping order refresh for stale viewer %s", self._identity.id)
            return []

        changed = []
        for order_id, order in fetched.items():
            if order_id in self._in_flight:
                continue
            if order is None or not order.involves(self._identity.id):
                if self._orders.pop(order_id, None) is not None:
                    changed.append(order_id)
            elif self._orders.get(order_id) != order:
                self._orders[order_id] = order
                changed.append(order_id)
        self.counts = counts
        return changed
