"""Cart domain models — pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass

from src.mk_common.errors import InvalidQuantityError
from src.mk_order.domain.models import OrderDraft


@dataclass
class CartItem:
    id: str
    client_id: str
    product_id: str
    quantity: int  # >= 1


@dataclass(frozen=True)
class Product:
    """Catalog snapshot needed to price a cart line. Owned by the catalog."""

    id: str
    merchant_id: str
    title: str
    price: int  # cents
    image_url: str | None = None


@dataclass(frozen=True)
class CartLine:
    item: CartItem
    product: Product

    @property
    def subtotal(self) -> int:
        return self.product.price * self.item.quantity

    def to_draft(self) -> OrderDraft:
        """Freeze this line into an order draft at today's price."""
        ensure_quantity(self.item.quantity)
        return OrderDraft(
            line_id=self.item.id,
            client_id=self.item.client_id,
            merchant_id=self.product.merchant_id,
            product_id=self.product.id,
            quantity=self.item.quantity,
            total=self.subtotal,
        )


def ensure_quantity(quantity: int) -> int:
    if quantity < 1:
        raise InvalidQuantityError(quantity)
    return quantity


@dataclass(frozen=True)
class Favorite:
    id: str
    client_id: str
    product: Product
