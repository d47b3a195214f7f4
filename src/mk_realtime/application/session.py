# src/mk_realtime/application/session.py
"""SyncSession — one dashboard connection's realtime view.

Composes the RealtimeSyncController with the per-viewer cores:

  messages feed -> ThreadAggregator.apply + ConversationStore.apply,
                   coalesced push of ``threads`` / ``conversation`` frames
                   (new counterparts get their display name looked up)
  orders feed   -> OrderLifecycleEngine.apply (mark dirty), coalesced
                   refetch + push of ``orders`` / ``order_counts`` frames

Frames are plain JSON dicts: {"type": ..., "data": ...}. Failures of a
client action are pushed as ``error`` frames carrying the AppError code.
"""
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.mk_common.database import async_session_factory
from src.mk_common.enums import FeedTable
from src.mk_common.errors import AppError, InvalidActionError, MalformedEventError
from src.mk_common.identity import Identity
from src.mk_messaging.application.conversation import ConversationStore
from src.mk_messaging.application.schemas import (
    ConversationResponse,
    MessageResponse,
    ThreadResponse,
)
from src.mk_messaging.application.threads import ThreadAggregator
from src.mk_messaging.domain.models import Message
from src.mk_messaging.domain.repository import MessageRepositoryProtocol
from src.mk_order.application.engine import OrderLifecycleEngine
from src.mk_order.application.schemas import OrderCountsResponse, OrderResponse
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_realtime.application.controller import (
    BindingToken,
    FeedRoute,
    RealtimeSyncController,
)
from src.mk_realtime.domain.events import ChangeEvent, RowFilter
from src.mk_realtime.feed.protocol import ChangeFeedProtocol

logger = logging.getLogger(__name__)

FrameSender = Callable[[dict[str, Any]], Awaitable[None]]


def frame(kind: str, data: Any) -> dict[str, Any]:
    return {"type": kind, "data": data}


class SyncSession:
    def __init__(
        self,
        identity: Identity,
        feed: ChangeFeedProtocol,
        send_frame: FrameSender,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        coalesce_seconds: float | None = None,
        message_repo: MessageRepositoryProtocol | None = None,
        order_repo: OrderRepositoryProtocol | None = None,
    ) -> None:
        self.identity = identity
        self._send = send_frame
        self._session_factory = session_factory
        self.controller = RealtimeSyncController(feed, coalesce_seconds)
        self.threads = ThreadAggregator(message_repo)
        self.conversation = ConversationStore(feed, message_repo)
        self.orders = OrderLifecycleEngine(identity, feed, order_repo)
        self._threads_dirty = False
        self._conversation_dirty = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def routes(self) -> list[FeedRoute]:
        user_id = self.identity.id
        return [
            FeedRoute(
                name="messages",
                table=FeedTable.MESSAGES.value,
                row_filter=RowFilter.where(to_user=user_id).or_where(from_user=user_id),
                on_event=self._on_message_event,
                refresh=self._refresh_messages,
                resync=self._resync_messages,
            ),
            FeedRoute(
                name="orders",
                table=FeedTable.ORDERS.value,
                row_filter=RowFilter.where(**{self.identity.order_owner_column: user_id}),
                on_event=self._on_order_event,
                refresh=self._refresh_orders,
                resync=self._resync_orders,
            ),
        ]

    async def start(self) -> None:
        """Subscribe first, then load, so nothing committed in between is missed."""
        await self.controller.bind(self.identity, self.routes())
        async with self._session_factory() as db:
            await self.threads.load(self.identity.id, db)
            await self.orders.load(db)
        await self._push_threads()
        await self._push_orders()

    async def close(self) -> None:
        await self.controller.unbind()
        self.conversation.close()

    # ------------------------------------------------------------------
    # Client actions
    # ------------------------------------------------------------------

    async def handle(self, action: dict[str, Any]) -> None:
        name = action.get("action")
        try:
            if name == "open_conversation":
                await self._open_conversation(str(action.get("counterpart_id") or ""))
            elif name == "close_conversation":
                self.conversation.close()
                await self._send(frame("conversation", None))
            elif name == "send":
                await self._send_message(str(action.get("content") or ""))
            else:
                raise InvalidActionError(f"unknown action {name!r}")
        except AppError as exc:
            await self._error(exc.code, exc.message, exc.data)

    async def _open_conversation(self, counterpart_id: str) -> None:
        if not counterpart_id:
            raise InvalidActionError("counterpart_id is required")
        async with self._session_factory() as db:
            await self.conversation.open(self.identity.id, counterpart_id, db)
        self.threads.mark_read_local(counterpart_id)
        await self._push_conversation()
        await self._push_threads()

    async def _send_message(self, content: str) -> None:
        async with self._session_factory() as db:
            await self.conversation.send(content, db, on_provisional=self._push_provisional)
        await self._push_conversation()

    async def _push_provisional(self, _message: Message) -> None:
        await self._push_conversation()

    # ------------------------------------------------------------------
    # Feed routing
    # ------------------------------------------------------------------

    def _on_message_event(self, event: ChangeEvent) -> None:
        try:
            self._threads_dirty |= self.threads.apply(event)
            self._conversation_dirty |= self.conversation.apply(event)
        except MalformedEventError as exc:
            logger.warning("Dropping messages event: %s", exc.message)

    def _on_order_event(self, event: ChangeEvent) -> None:
        try:
            self.orders.apply(event)
        except MalformedEventError as exc:
            logger.warning("Dropping orders event: %s", exc.message)

    async def _refresh_messages(self, token: BindingToken) -> None:
        counterpart = self.conversation.counterpart_id
        if counterpart is not None and self.threads.unread_for(counterpart):
            # The open conversation keeps consuming what arrives in it.
            async with self._session_factory() as db:
                await self.conversation.consume_unread(db)
            if not token.alive:
                return
            self.threads.mark_read_local(counterpart)
            self._threads_dirty = self._conversation_dirty = True
        if not token.alive:
            return
        if self._threads_dirty and self.threads.unnamed:
            async with self._session_factory() as db:
                await self.threads.resolve_names(db)
            if not token.alive:
                return
        if self._threads_dirty:
            self._threads_dirty = False
            await self._push_threads()
        if self._conversation_dirty:
            self._conversation_dirty = False
            await self._push_conversation()

    async def _refresh_orders(self, token: BindingToken) -> None:
        async with self._session_factory() as db:
            changed = await self.orders.refresh(db, alive=lambda: token.alive)
        if not token.alive:
            return
        if changed:
            await self._push_orders()
        else:
            await self._push_counts()

    async def _resync_messages(self, token: BindingToken) -> None:
        """Reload after a feed gap; the open conversation is reloaded too."""
        counterpart = self.conversation.counterpart_id
        try:
            async with self._session_factory() as db:
                await self.threads.load(self.identity.id, db)
                if counterpart is not None:
                    await self.conversation.open(self.identity.id, counterpart, db)
        except AppError as exc:
            if token.alive:
                await self._error(exc.code, exc.message, exc.data)
            return
        self._threads_dirty = True
        self._conversation_dirty = counterpart is not None

    async def _resync_orders(self, token: BindingToken) -> None:
        try:
            async with self._session_factory() as db:
                await self.orders.load(db)
        except AppError as exc:
            if token.alive:
                await self._error(exc.code, exc.message, exc.data)
            return
        if token.alive:
            await self._push_orders()

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    async def _push_threads(self) -> None:
        await self._send(
            frame(
                "threads",
                {
                    "threads": [
                        ThreadResponse.from_domain(t).model_dump(mode="json")
                        for t in self.threads.threads
                    ],
                    "total_unread": self.threads.total_unread,
                },
            )
        )

    async def _push_conversation(self) -> None:
        counterpart = self.conversation.counterpart_id
        if counterpart is None:
            return
        payload = ConversationResponse(
            counterpart_id=counterpart,
            messages=[
                MessageResponse.from_domain(m, provisional=self.conversation.is_provisional(m.id))
                for m in self.conversation.messages
            ],
        )
        await self._send(frame("conversation", payload.model_dump(mode="json")))

    async def _push_orders(self) -> None:
        orders = [OrderResponse.from_domain(o).model_dump(mode="json") for o in self.orders.orders]
        await self._send(frame("orders", orders))
        await self._push_counts()

    async def _push_counts(self) -> None:
        counts = OrderCountsResponse.from_domain(self.orders.counts)
        await self._send(frame("order_counts", counts.model_dump()))

    async def _error(self, code: int, message: str, data: Any = None) -> None:
        await self._send(frame("error", {"code": code, "message": message, "data": data}))
