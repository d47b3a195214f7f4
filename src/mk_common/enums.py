"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class Role(str, Enum):
    CLIENT = "client"
    MERCHANT = "merchant"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class FeedEventType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class FeedTable(str, Enum):
    """Tables whose row changes are published on the change feed."""
    MESSAGES = "messages"
    ORDERS = "orders"
    CART_ITEMS = "cart_items"
