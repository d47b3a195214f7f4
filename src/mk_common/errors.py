"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  2xxx: Messaging
  3xxx: Cart / Checkout
  4xxx: Order lifecycle
  9xxx: System

Validation, permission and transition errors are never retried.
TransientBackendError is the only retryable failure; the caller decides.
"""

from typing import Any


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.data: dict[str, Any] | None = None
        super().__init__(message)


class ValidationError(AppError):
    """Bad input rejected before any backend call."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(code, message, 422)


# --- 1xxx: Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid or expired credentials", 401)


class RoleRequiredError(AppError):
    def __init__(self, role: str) -> None:
        super().__init__(1004, f"This action requires the {role} role", 403)


# --- 2xxx: Messaging ---

class EmptyMessageError(ValidationError):
    def __init__(self) -> None:
        super().__init__(2001, "Message content cannot be empty")


class NoOpenConversationError(AppError):
    def __init__(self) -> None:
        super().__init__(2002, "No conversation is open", 409)


class InvalidActionError(ValidationError):
    def __init__(self, detail: str) -> None:
        super().__init__(2003, f"Invalid sync action: {detail}")


# --- 3xxx: Cart / Checkout ---

class EmptyCartError(ValidationError):
    def __init__(self) -> None:
        super().__init__(3001, "Cart is empty")


class InvalidQuantityError(ValidationError):
    def __init__(self, quantity: int) -> None:
        super().__init__(3002, f"Quantity must be at least 1, got {quantity}")


class CartItemNotFoundError(AppError):
    def __init__(self, item_id: str) -> None:
        super().__init__(3003, f"Cart item not found: {item_id}", 404)


class ProductNotFoundError(AppError):
    def __init__(self, product_id: str) -> None:
        super().__init__(3004, f"Product not found: {product_id}", 404)


class FavoriteNotFoundError(AppError):
    def __init__(self, product_id: str) -> None:
        super().__init__(3005, f"Product is not in favorites: {product_id}", 404)


class PartialCheckoutError(AppError):
    """Some cart lines became orders, others did not.

    ``uncleared_line_ids`` are lines that were ordered but could not be
    removed from the cart; checking out again would order them twice.
    """

    def __init__(
        self,
        failed_line_ids: list[str],
        created_order_ids: list[str],
        uncleared_line_ids: list[str] | None = None,
    ) -> None:
        self.failed_line_ids = list(failed_line_ids)
        self.created_order_ids = list(created_order_ids)
        self.uncleared_line_ids = list(uncleared_line_ids or [])
        message = f"Checkout failed for cart lines: {', '.join(self.failed_line_ids)}"
        if self.uncleared_line_ids:
            message += (
                f"; ordered lines still in cart: {', '.join(self.uncleared_line_ids)}"
            )
        super().__init__(3010, message, 409)
        self.data = {
            "failed_line_ids": self.failed_line_ids,
            "created_order_ids": self.created_order_ids,
            "uncleared_line_ids": self.uncleared_line_ids,
        }


class CartNotClearedError(AppError):
    """Every line became an order but the cart could not be emptied."""

    def __init__(self, created_order_ids: list[str], uncleared_line_ids: list[str]) -> None:
        self.created_order_ids = list(created_order_ids)
        self.uncleared_line_ids = list(uncleared_line_ids)
        super().__init__(
            3011,
            "Orders were created but the cart could not be cleared",
            503,
        )
        self.data = {
            "created_order_ids": self.created_order_ids,
            "uncleared_line_ids": self.uncleared_line_ids,
        }


# --- 4xxx: Order lifecycle ---

class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4004, f"Order not found: {order_id}", 404)


class OrderPermissionError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(
            4030, f"Only the owning merchant may change order {order_id}", 403
        )


class InvalidTransitionError(AppError):
    def __init__(self, order_id: str, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            4031,
            f"Order {order_id} cannot move from {current} to {requested}",
            422,
        )
        self.data = {"order_id": order_id, "current": current, "requested": requested}


class OrderConflictError(AppError):
    """Backend refused an optimistic status change; view was resynced."""

    def __init__(self, order_id: str, authoritative_status: str) -> None:
        self.authoritative_status = authoritative_status
        super().__init__(
            4090,
            f"Order {order_id} was changed concurrently, now {authoritative_status}",
            409,
        )
        self.data = {"order_id": order_id, "authoritative_status": authoritative_status}


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class TransientBackendError(AppError):
    def __init__(self, detail: str = "Backend temporarily unavailable") -> None:
        super().__init__(9003, detail, 503)


class MalformedEventError(AppError):
    """A change-feed payload failed validation at the ingestion boundary."""

    def __init__(self, detail: str) -> None:
        super().__init__(9004, f"Malformed change event: {detail}", 400)
