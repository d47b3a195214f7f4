"""FavoritesApplicationService — a client's saved products.

Favoriting is idempotent. Moving a favorite to the cart goes through the
cart service so quantities merge exactly as a manual add would.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_cart.application.schemas import (
    AddFavoriteResponse,
    CartItemResponse,
    FavoriteListResponse,
    FavoriteResponse,
    RemoveFavoriteResponse,
)
from src.mk_cart.application.service import CartApplicationService
from src.mk_cart.domain.repository import CartRepositoryProtocol, FavoriteRepositoryProtocol
from src.mk_cart.infrastructure.persistence import CartRepository, FavoriteRepository
from src.mk_common.database import commit, rollback
from src.mk_common.errors import FavoriteNotFoundError, ProductNotFoundError


class FavoritesApplicationService:
    def __init__(
        self,
        cart: CartApplicationService,
        repo: FavoriteRepositoryProtocol | None = None,
        cart_repo: CartRepositoryProtocol | None = None,
    ) -> None:
        self._cart = cart
        self._repo: FavoriteRepositoryProtocol = repo or FavoriteRepository()
        self._cart_repo: CartRepositoryProtocol = cart_repo or CartRepository()

    async def list_favorites(self, client_id: str, db: AsyncSession) -> FavoriteListResponse:
        favorites = await self._repo.list_for(client_id, db)
        return FavoriteListResponse(items=[FavoriteResponse.from_domain(f) for f in favorites])

    async def add(self, client_id: str, product_id: str, db: AsyncSession) -> AddFavoriteResponse:
        if await self._cart_repo.get_product(product_id, db) is None:
            raise ProductNotFoundError(product_id)
        try:
            favorite_id = await self._repo.add(client_id, product_id, db)
            await commit(db, "add favorite")
        except Exception:
            await rollback(db)
            raise
        return AddFavoriteResponse(id=favorite_id, product_id=product_id)

    async def remove(
        self, client_id: str, product_id: str, db: AsyncSession
    ) -> RemoveFavoriteResponse:
        try:
            removed = await self._repo.remove(client_id, product_id, db)
            await commit(db, "remove favorite")
        except Exception:
            await rollback(db)
            raise
        if not removed:
            raise FavoriteNotFoundError(product_id)
        return RemoveFavoriteResponse(product_id=product_id)

    async def add_to_cart(
        self, client_id: str, product_id: str, db: AsyncSession
    ) -> CartItemResponse:
        """Put one unit of a favorited product in the cart; the favorite stays."""
        favorites = await self._repo.list_for(client_id, db)
        if not any(f.product.id == product_id for f in favorites):
            raise FavoriteNotFoundError(product_id)
        return await self._cart.add_item(client_id, product_id, 1, db)
