"""Order status transition graph.

    pending -> confirmed -> shipped -> delivered
    pending | confirmed | shipped -> cancelled

delivered and cancelled are terminal. Every edge not listed is invalid,
including self-loops.
"""
from src.mk_common.enums import OrderStatus

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in TRANSITIONS[current]


def is_terminal(status: OrderStatus) -> bool:
    return not TRANSITIONS[status]


def next_statuses(current: OrderStatus) -> list[OrderStatus]:
    """Valid targets in lifecycle order, for UI action buttons."""
    return [status for status in OrderStatus if status in TRANSITIONS[current]]
