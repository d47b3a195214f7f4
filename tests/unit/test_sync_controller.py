"""Unit tests for RealtimeSyncController: binding lifecycle and coalesced refresh."""
import asyncio
from collections.abc import AsyncIterator

from src.mk_common.enums import FeedEventType, Role
from src.mk_common.errors import TransientBackendError
from src.mk_common.identity import Identity
from src.mk_realtime.application.controller import BindingToken, FeedRoute, RealtimeSyncController
from src.mk_realtime.domain.events import ChangeEvent, RowFilter
from src.mk_realtime.feed.memory import InMemoryChangeFeed

ALICE = Identity("alice", Role.CLIENT)
BOB = Identity("bob", Role.MERCHANT)
WINDOW = 0.01


class _Recorder:
    """Route callbacks that record what the controller hands them."""

    def __init__(self, gate: asyncio.Event | None = None) -> None:
        self.events: list[ChangeEvent] = []
        self.tokens: list[BindingToken] = []
        self.alive_after_fetch: list[bool] = []
        self.started = asyncio.Event()
        self.gate = gate

    def on_event(self, event: ChangeEvent) -> None:
        self.events.append(event)

    async def refresh(self, token: BindingToken) -> None:
        self.tokens.append(token)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        self.alive_after_fetch.append(token.alive)

    def route(self, user: Identity) -> FeedRoute:
        return FeedRoute(
            name="messages",
            table="messages",
            row_filter=RowFilter.where(to_user=user.id),
            refresh=self.refresh,
            on_event=self.on_event,
        )


class _DroppedSubscription:
    """A subscription whose connection is lost on the first read."""

    def __init__(self, table: str, row_filter: RowFilter) -> None:
        self.table = table
        self.row_filter = row_filter
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        raise TransientBackendError("feed connection lost")
        yield  # pragma: no cover

    async def close(self) -> None:
        self.closed = True


class _FlakyFeed(InMemoryChangeFeed):
    """Memory feed whose first ``drops`` subscriptions die on delivery.

    After a drop, the next ``refusals`` subscribe calls fail outright.
    """

    def __init__(self, drops: int = 1, refusals: int = 0) -> None:
        super().__init__()
        self.drops = drops
        self.refusals = refusals
        self.dropped: list[_DroppedSubscription] = []

    async def subscribe(self, table: str, row_filter: RowFilter):  # type: ignore[override]
        if self.dropped and self.refusals > 0:
            self.refusals -= 1
            raise TransientBackendError("feed unavailable")
        if self.drops > 0:
            self.drops -= 1
            self.dropped.append(_DroppedSubscription(table, row_filter))
            return self.dropped[-1]
        return await super().subscribe(table, row_filter)


def _msg(message_id: str, to_user: str = "alice") -> ChangeEvent:
    return ChangeEvent("messages", FeedEventType.INSERT, {"id": message_id, "to_user": to_user})


async def _settle(controller: RealtimeSyncController) -> None:
    for _ in range(10):
        await asyncio.sleep(0)
    await controller.drain()


class TestBinding:
    async def test_bind_subscribes_each_route(self) -> None:
        feed = InMemoryChangeFeed()
        controller = RealtimeSyncController(feed, WINDOW)

        token = await controller.bind(ALICE, [_Recorder().route(ALICE)])

        assert token.alive
        assert controller.identity == ALICE
        assert feed.subscriber_count("messages") == 1
        await controller.unbind()

    async def test_unbind_tears_down_and_is_idempotent(self) -> None:
        feed = InMemoryChangeFeed()
        controller = RealtimeSyncController(feed, WINDOW)
        token = await controller.bind(ALICE, [_Recorder().route(ALICE)])

        await controller.unbind()
        await controller.unbind()

        assert not token.alive
        assert controller.identity is None
        assert feed.subscriber_count("messages") == 0

    async def test_rebind_replaces_previous_identity(self) -> None:
        feed = InMemoryChangeFeed()
        controller = RealtimeSyncController(feed, WINDOW)
        alice = _Recorder()
        bob = _Recorder()
        first = await controller.bind(ALICE, [alice.route(ALICE)])

        second = await controller.bind(BOB, [bob.route(BOB)])
        await feed.publish(_msg("m1", to_user="alice"))
        await feed.publish(_msg("m2", to_user="bob"))
        await _settle(controller)

        assert not first.alive and second.alive
        assert feed.subscriber_count("messages") == 1
        assert alice.events == []
        assert [e.row_id for e in bob.events] == ["m2"]
        await controller.unbind()

    async def test_events_after_unbind_are_not_processed(self) -> None:
        feed = InMemoryChangeFeed()
        controller = RealtimeSyncController(feed, WINDOW)
        recorder = _Recorder()
        await controller.bind(ALICE, [recorder.route(ALICE)])
        await controller.unbind()

        await feed.publish(_msg("m1"))
        await asyncio.sleep(WINDOW * 3)

        assert recorder.events == []
        assert recorder.tokens == []


class TestCoalescing:
    async def test_burst_collapses_into_one_refresh(self) -> None:
        feed = InMemoryChangeFeed()
        controller = RealtimeSyncController(feed, WINDOW)
        recorder = _Recorder()
        await controller.bind(ALICE, [recorder.route(ALICE)])

        for i in range(5):
            await feed.publish(_msg(f"m{i}"))
        await _settle(controller)

        assert len(recorder.events) == 5
        assert controller.refresh_runs("messages") == 1
        await controller.unbind()

    async def test_events_during_refresh_schedule_exactly_one_more(self) -> None:
        feed = InMemoryChangeFeed()
        controller = RealtimeSyncController(feed, WINDOW)
        gate = asyncio.Event()
        recorder = _Recorder(gate)
        await controller.bind(ALICE, [recorder.route(ALICE)])

        await feed.publish(_msg("m1"))
        await asyncio.wait_for(recorder.started.wait(), timeout=1)
        for i in range(2, 6):
            await feed.publish(_msg(f"m{i}"))
        for _ in range(10):
            await asyncio.sleep(0)
        gate.set()
        await _settle(controller)

        assert controller.refresh_runs("messages") == 2
        await controller.unbind()

    async def test_request_refresh_without_events(self) -> None:
        controller = RealtimeSyncController(InMemoryChangeFeed(), WINDOW)
        recorder = _Recorder()
        await controller.bind(ALICE, [recorder.route(ALICE)])

        controller.request_refresh("messages")
        controller.request_refresh("unknown")
        await _settle(controller)

        assert len(recorder.tokens) == 1
        await controller.unbind()

    async def test_failed_refresh_does_not_stop_delivery(self) -> None:
        feed = InMemoryChangeFeed()
        controller = RealtimeSyncController(feed, WINDOW)
        calls: list[int] = []

        async def flaky(token: BindingToken) -> None:
            calls.append(1)
            if len(calls) == 1:
                raise TransientBackendError()

        route = FeedRoute("messages", "messages", RowFilter.where(to_user="alice"), flaky)
        await controller.bind(ALICE, [route])

        await feed.publish(_msg("m1"))
        await _settle(controller)
        await feed.publish(_msg("m2"))
        await _settle(controller)

        assert len(calls) == 2
        await controller.unbind()

    async def test_handler_error_skips_refresh_for_that_event(self) -> None:
        feed = InMemoryChangeFeed()
        controller = RealtimeSyncController(feed, WINDOW)
        recorder = _Recorder()

        def broken(event: ChangeEvent) -> None:
            raise ValueError("bad row")

        route = FeedRoute("messages", "messages", RowFilter(), recorder.refresh, broken)
        await controller.bind(ALICE, [route])
        await feed.publish(_msg("m1"))
        await _settle(controller)

        assert recorder.tokens == []
        await controller.unbind()


class TestStaleGuard:
    async def test_pending_refresh_cancelled_on_unbind(self) -> None:
        feed = InMemoryChangeFeed()
        controller = RealtimeSyncController(feed, coalesce_seconds=0.2)
        recorder = _Recorder()
        await controller.bind(ALICE, [recorder.route(ALICE)])

        await feed.publish(_msg("m1"))
        for _ in range(10):
            await asyncio.sleep(0)
        await controller.unbind()
        await asyncio.sleep(0.3)

        assert recorder.tokens == []

    async def test_running_refresh_sees_dead_token(self) -> None:
        feed = InMemoryChangeFeed()
        controller = RealtimeSyncController(feed, WINDOW)
        gate = asyncio.Event()
        recorder = _Recorder(gate)
        await controller.bind(ALICE, [recorder.route(ALICE)])

        await feed.publish(_msg("m1"))
        await asyncio.wait_for(recorder.started.wait(), timeout=1)
        await controller.bind(BOB, [_Recorder().route(BOB)])
        gate.set()
        for _ in range(10):
            await asyncio.sleep(0)

        assert recorder.alive_after_fetch == [False]
        assert recorder.tokens[0].identity == ALICE
        await controller.unbind()


class TestResubscribe:
    async def test_lost_subscription_is_renewed_and_resynced(self) -> None:
        feed = _FlakyFeed()
        controller = RealtimeSyncController(feed, WINDOW, resubscribe_delay=0)
        recorder = _Recorder()
        resyncs: list[BindingToken] = []

        async def resync(token: BindingToken) -> None:
            resyncs.append(token)

        route = FeedRoute(
            "messages",
            "messages",
            RowFilter.where(to_user="alice"),
            recorder.refresh,
            recorder.on_event,
            resync,
        )
        token = await controller.bind(ALICE, [route])
        await _settle(controller)

        assert feed.dropped[0].closed
        assert feed.subscriber_count("messages") == 1
        assert resyncs == [token]
        # the resync is followed by one refresh
        assert len(recorder.tokens) == 1

        await feed.publish(_msg("m1"))
        await _settle(controller)
        assert [e.row_id for e in recorder.events] == ["m1"]

        await controller.unbind()
        assert feed.subscriber_count("messages") == 0

    async def test_resubscribe_retries_until_feed_answers(self) -> None:
        feed = _FlakyFeed(refusals=1)
        controller = RealtimeSyncController(feed, WINDOW, resubscribe_delay=0)
        recorder = _Recorder()

        await controller.bind(ALICE, [recorder.route(ALICE)])
        # the retry after a refusal backs off for 0.2s
        await asyncio.sleep(0.3)
        await _settle(controller)

        assert feed.refusals == 0
        assert feed.subscriber_count("messages") == 1
        await feed.publish(_msg("m1"))
        await _settle(controller)
        assert [e.row_id for e in recorder.events] == ["m1"]
        await controller.unbind()

    async def test_unbind_during_backoff_stops_retrying(self) -> None:
        feed = _FlakyFeed()
        controller = RealtimeSyncController(feed, WINDOW, resubscribe_delay=0.05)
        await controller.bind(ALICE, [_Recorder().route(ALICE)])
        await asyncio.sleep(0)

        await controller.unbind()
        await asyncio.sleep(0.1)

        assert feed.subscriber_count("messages") == 0
