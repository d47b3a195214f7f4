# src/mk_cart/domain/repository.py
"""CartRepository Protocol — interface contract for persistence layer."""
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_cart.domain.models import CartItem, CartLine, Favorite, Product


class CartRepositoryProtocol(Protocol):
    async def list_lines(self, client_id: str, db: AsyncSession) -> list[CartLine]: ...

    async def get_item(self, item_id: str, client_id: str, db: AsyncSession) -> CartItem | None: ...

    async def get_product(self, product_id: str, db: AsyncSession) -> Product | None: ...

    async def add_item(
        self, client_id: str, product_id: str, quantity: int, db: AsyncSession
    ) -> CartItem: ...

    async def update_quantity(
        self, item_id: str, client_id: str, quantity: int, db: AsyncSession
    ) -> CartItem | None: ...

    async def remove_items(
        self, item_ids: list[str], client_id: str, db: AsyncSession
    ) -> list[str]: ...

    async def clear(self, client_id: str, db: AsyncSession) -> list[str]: ...

    async def count_lines(self, client_id: str, db: AsyncSession) -> int: ...

    async def count_products(self, merchant_id: str, db: AsyncSession) -> int: ...


class FavoriteRepositoryProtocol(Protocol):
    async def list_for(self, client_id: str, db: AsyncSession) -> list[Favorite]: ...

    async def add(self, client_id: str, product_id: str, db: AsyncSession) -> str: ...

    async def remove(self, client_id: str, product_id: str, db: AsyncSession) -> bool: ...

    async def count(self, client_id: str, db: AsyncSession) -> int: ...
