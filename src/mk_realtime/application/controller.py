# src/mk_realtime/application/controller.py
"""RealtimeSyncController — owns feed subscriptions for one signed-in identity.

A binding is one (identity, routes) pair. Each route subscribes to one
table with a row filter scoped to the identity and carries its callbacks:

  on_event(event)   cheap, synchronous local fold (timeline append,
                    mark order dirty). Runs once per delivered event.
  refresh(token)    async recompute against the backend. Coalesced: a
                    burst of events inside SYNC_COALESCE_SECONDS runs it
                    once, and events arriving mid-refresh schedule exactly
                    one more run.
  resync(token)     optional full reload against the backend, run after
                    a broken subscription was renewed.

Rebinding to another identity, or unbind(), tears every subscription
down. A refresh already running at teardown is allowed to finish; it
receives a BindingToken and must check ``token.alive`` before applying
what it fetched.

A subscription that fails during delivery is closed and renewed with
back-off for as long as its binding lives. The route then resyncs, since
events published in the gap were never delivered.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from config.settings import settings
from src.mk_common.errors import TransientBackendError
from src.mk_common.identity import Identity
from src.mk_realtime.domain.events import ChangeEvent, RowFilter
from src.mk_realtime.feed.protocol import ChangeFeedProtocol, SubscriptionProtocol

logger = logging.getLogger(__name__)

_RESUBSCRIBE_DELAY_SECONDS = 0.5
_RESUBSCRIBE_DELAY_MAX_SECONDS = 10.0


class BindingToken:
    """Liveness handle for one binding generation."""

    def __init__(
        self, controller: "RealtimeSyncController", identity: Identity, generation: int
    ) -> None:
        self._controller = controller
        self.identity = identity
        self.generation = generation

    @property
    def alive(self) -> bool:
        return self._controller.generation == self.generation


@dataclass(frozen=True)
class FeedRoute:
    name: str
    table: str
    row_filter: RowFilter
    refresh: Callable[[BindingToken], Awaitable[None]]
    on_event: Callable[[ChangeEvent], None] | None = None
    # full reload after the subscription had to be renewed
    resync: Callable[[BindingToken], Awaitable[None]] | None = None


class _CoalescedRefresh:
    def __init__(self, route: FeedRoute, token: BindingToken, window: float) -> None:
        self._route = route
        self._token = token
        self._window = window
        self._task: asyncio.Task[None] | None = None
        self._waiting = False
        self._rerun = False
        self.runs = 0

    def trigger(self) -> None:
        if self._task is None or self._task.done():
            self._waiting = True
            self._task = asyncio.create_task(self._run(), name=f"refresh:{self._route.name}")
        elif not self._waiting:
            self._rerun = True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._window)
            self._waiting = False
            self._rerun = False
            if not self._token.alive:
                return
            self.runs += 1
            try:
                await self._route.refresh(self._token)
            except TransientBackendError as exc:
                logger.warning("%s refresh failed: %s", self._route.name, exc.message)
            except Exception:
                logger.exception("%s refresh crashed", self._route.name)
            if not self._rerun:
                return
            self._waiting = True

    def cancel_pending(self) -> None:
        # A refresh already past its coalescing window runs to completion.
        if self._task is not None and self._waiting:
            self._task.cancel()

    async def wait_idle(self) -> None:
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})


class RealtimeSyncController:
    def __init__(
        self,
        feed: ChangeFeedProtocol,
        coalesce_seconds: float | None = None,
        resubscribe_delay: float = _RESUBSCRIBE_DELAY_SECONDS,
    ) -> None:
        self._feed = feed
        self._resubscribe_delay = resubscribe_delay
        if coalesce_seconds is None:
            coalesce_seconds = settings.SYNC_COALESCE_SECONDS
        self._window = coalesce_seconds
        self._generation = 0
        self._token: BindingToken | None = None
        self._subscriptions: list[SubscriptionProtocol] = []
        self._consumers: list[asyncio.Task[None]] = []
        self._refreshers: dict[str, _CoalescedRefresh] = {}

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def identity(self) -> Identity | None:
        return self._token.identity if self._token is not None else None

    @property
    def token(self) -> BindingToken | None:
        return self._token

    def refresh_runs(self, route_name: str) -> int:
        refresher = self._refreshers.get(route_name)
        return refresher.runs if refresher is not None else 0

    async def bind(self, identity: Identity, routes: list[FeedRoute]) -> BindingToken:
        """Subscribe every route for ``identity``, replacing any prior binding."""
        if self._token is not None:
            await self.unbind()
        self._generation += 1
        token = BindingToken(self, identity, self._generation)
        self._token = token
        try:
            for route in routes:
                subscription = await self._feed.subscribe(route.table, route.row_filter)
                self._subscriptions.append(subscription)
                refresher = _CoalescedRefresh(route, token, self._window)
                self._refreshers[route.name] = refresher
                self._consumers.append(
                    asyncio.create_task(
                        self._consume(subscription, route, refresher, token),
                        name=f"feed:{route.name}",
                    )
                )
        except Exception:
            await self.unbind()
            raise
        logger.info(
            "Sync bound: user=%s role=%s routes=%s generation=%d",
            identity.id,
            identity.role.value,
            ",".join(route.name for route in routes),
            token.generation,
        )
        return token

    async def unbind(self) -> None:
        """Tear down every subscription of the current binding. Idempotent."""
        if self._token is None:
            return
        identity = self._token.identity
        self._generation += 1
        self._token = None
        for refresher in self._refreshers.values():
            refresher.cancel_pending()
        for consumer in self._consumers:
            consumer.cancel()
        for subscription in self._subscriptions:
            try:
                await subscription.close()
            except TransientBackendError as exc:
                logger.warning("Unsubscribe from %s failed: %s", subscription.table, exc.message)
        if self._consumers:
            await asyncio.gather(*self._consumers, return_exceptions=True)
        self._subscriptions, self._consumers, self._refreshers = [], [], {}
        logger.info("Sync unbound: user=%s", identity.id)

    def request_refresh(self, route_name: str) -> None:
        """Schedule a coalesced refresh outside of feed delivery."""
        refresher = self._refreshers.get(route_name)
        if refresher is not None:
            refresher.trigger()

    async def drain(self) -> None:
        """Wait until every scheduled refresh has run."""
        await asyncio.sleep(0)
        for refresher in list(self._refreshers.values()):
            await refresher.wait_idle()

    async def _consume(
        self,
        subscription: SubscriptionProtocol,
        route: FeedRoute,
        refresher: _CoalescedRefresh,
        token: BindingToken,
    ) -> None:
        while token.alive:
            try:
                async for event in subscription:
                    if not token.alive:
                        logger.debug("Discarding %s event for stale binding", route.name)
                        return
                    if route.on_event is not None:
                        try:
                            route.on_event(event)
                        except Exception:
                            logger.exception(
                                "%s event handler failed for row %s", route.name, event.row_id
                            )
                            continue
                    refresher.trigger()
                return
            except TransientBackendError as exc:
                logger.warning("%s feed delivery failed: %s", route.name, exc.message)
            renewed = await self._resubscribe(subscription, route, token)
            if renewed is None:
                return
            subscription = renewed
            await self._resync(route, refresher, token)

    async def _resubscribe(
        self, stale: SubscriptionProtocol, route: FeedRoute, token: BindingToken
    ) -> SubscriptionProtocol | None:
        """Replace a broken subscription, backing off until the feed answers.

        Returns None once the binding is gone.
        """
        try:
            await stale.close()
        except TransientBackendError as exc:
            logger.debug("Closing broken %s subscription failed: %s", route.name, exc.message)
        delay = self._resubscribe_delay
        while True:
            await asyncio.sleep(delay)
            if not token.alive:
                return None
            try:
                subscription = await self._feed.subscribe(route.table, route.row_filter)
            except TransientBackendError as exc:
                logger.warning("Resubscribe to %s failed: %s", route.table, exc.message)
                delay = min(max(delay, 0.1) * 2, _RESUBSCRIBE_DELAY_MAX_SECONDS)
                continue
            if not token.alive:
                await subscription.close()
                return None
            self._subscriptions = [
                subscription if current is stale else current for current in self._subscriptions
            ]
            logger.info("%s feed resubscribed for user %s", route.name, token.identity.id)
            return subscription

    async def _resync(
        self, route: FeedRoute, refresher: _CoalescedRefresh, token: BindingToken
    ) -> None:
        # Events published while the subscription was down are lost.
        if route.resync is not None:
            try:
                await route.resync(token)
            except TransientBackendError as exc:
                logger.warning("%s resync failed: %s", route.name, exc.message)
        refresher.trigger()
