# src/mk_realtime/feed/protocol.py
"""ChangeFeed Protocol — the consumption contract of the backend push channel.

Delivery is at-least-once with no ordering guarantee across tables.
A subscription yields ChangeEvents until it is closed; closing is allowed
at any time, including while a consumer is awaiting the next event.
"""
from collections.abc import AsyncIterator
from typing import Protocol

from src.mk_realtime.domain.events import ChangeEvent, RowFilter


class SubscriptionProtocol(Protocol):
    table: str
    row_filter: RowFilter

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    async def close(self) -> None: ...


class ChangeFeedProtocol(Protocol):
    async def subscribe(self, table: str, row_filter: RowFilter) -> SubscriptionProtocol: ...

    async def publish(self, event: ChangeEvent) -> None: ...
