# src/mk_cart/application/schemas.py
from pydantic import BaseModel, Field

from src.mk_cart.domain.models import CartItem, CartLine, Favorite


class AddCartItemRequest(BaseModel):
    product_id: str
    quantity: int = 1


class UpdateQuantityRequest(BaseModel):
    quantity: int


class CartItemResponse(BaseModel):
    id: str
    product_id: str
    quantity: int

    @classmethod
    def from_domain(cls, item: CartItem) -> "CartItemResponse":
        return cls(id=item.id, product_id=item.product_id, quantity=item.quantity)


class CartLineResponse(BaseModel):
    id: str
    product_id: str
    merchant_id: str
    title: str
    image_url: str | None = None
    unit_price_cents: int
    quantity: int
    subtotal_cents: int

    @classmethod
    def from_domain(cls, line: CartLine) -> "CartLineResponse":
        return cls(
            id=line.item.id,
            product_id=line.product.id,
            merchant_id=line.product.merchant_id,
            title=line.product.title,
            image_url=line.product.image_url,
            unit_price_cents=line.product.price,
            quantity=line.item.quantity,
            subtotal_cents=line.subtotal,
        )


class CartResponse(BaseModel):
    items: list[CartLineResponse]
    total_cents: int = Field(0, ge=0)


class RemoveCartItemResponse(BaseModel):
    id: str


class CheckoutResponse(BaseModel):
    order_ids: list[str]
    total_cents: int


class FavoriteResponse(BaseModel):
    id: str
    product_id: str
    merchant_id: str
    title: str
    image_url: str | None = None
    unit_price_cents: int

    @classmethod
    def from_domain(cls, favorite: Favorite) -> "FavoriteResponse":
        return cls(
            id=favorite.id,
            product_id=favorite.product.id,
            merchant_id=favorite.product.merchant_id,
            title=favorite.product.title,
            image_url=favorite.product.image_url,
            unit_price_cents=favorite.product.price,
        )


class FavoriteListResponse(BaseModel):
    items: list[FavoriteResponse]


class AddFavoriteRequest(BaseModel):
    product_id: str


class AddFavoriteResponse(BaseModel):
    id: str
    product_id: str


class RemoveFavoriteResponse(BaseModel):
    product_id: str
