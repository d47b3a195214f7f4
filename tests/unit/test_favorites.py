"""Unit tests for FavoritesApplicationService."""
from unittest.mock import AsyncMock

import pytest

from src.mk_cart.application.favorites import FavoritesApplicationService
from src.mk_cart.application.service import CartApplicationService
from src.mk_cart.domain.models import CartItem, Favorite, Product
from src.mk_common.errors import (
    FavoriteNotFoundError,
    ProductNotFoundError,
    TransientBackendError,
)
from src.mk_realtime.feed.memory import InMemoryChangeFeed

_MUG = Product(id="p1", merchant_id="m1", title="Mug", price=1500)


def _make_repos(favorites: list[Favorite] | None = None) -> tuple[AsyncMock, AsyncMock]:
    favorite_repo = AsyncMock()
    favorite_repo.list_for.return_value = favorites or []
    favorite_repo.add.return_value = "f1"
    favorite_repo.remove.return_value = True
    cart_repo = AsyncMock()
    cart_repo.get_product.return_value = _MUG
    cart_repo.add_item.return_value = CartItem(id="l1", client_id="c1", product_id="p1", quantity=1)
    return favorite_repo, cart_repo


def _make_service(
    favorite_repo: AsyncMock, cart_repo: AsyncMock
) -> FavoritesApplicationService:
    cart = CartApplicationService(InMemoryChangeFeed(), cart_repo, AsyncMock())
    return FavoritesApplicationService(cart, favorite_repo, cart_repo)


class TestFavorites:
    async def test_list(self) -> None:
        favorite_repo, cart_repo = _make_repos([Favorite(id="f1", client_id="c1", product=_MUG)])

        listing = await _make_service(favorite_repo, cart_repo).list_favorites("c1", AsyncMock())

        assert [(f.id, f.title) for f in listing.items] == [("f1", "Mug")]

    async def test_add_commits(self) -> None:
        favorite_repo, cart_repo = _make_repos()
        db = AsyncMock()

        response = await _make_service(favorite_repo, cart_repo).add("c1", "p1", db)

        assert response.id == "f1"
        favorite_repo.add.assert_awaited_once_with("c1", "p1", db)
        db.commit.assert_awaited_once()

    async def test_add_unknown_product(self) -> None:
        favorite_repo, cart_repo = _make_repos()
        cart_repo.get_product.return_value = None

        with pytest.raises(ProductNotFoundError):
            await _make_service(favorite_repo, cart_repo).add("c1", "p9", AsyncMock())
        favorite_repo.add.assert_not_awaited()

    async def test_add_failure_rolls_back(self) -> None:
        favorite_repo, cart_repo = _make_repos()
        favorite_repo.add.side_effect = TransientBackendError()
        db = AsyncMock()

        with pytest.raises(TransientBackendError):
            await _make_service(favorite_repo, cart_repo).add("c1", "p1", db)
        db.rollback.assert_awaited_once()

    async def test_remove_missing(self) -> None:
        favorite_repo, cart_repo = _make_repos()
        favorite_repo.remove.return_value = False

        with pytest.raises(FavoriteNotFoundError):
            await _make_service(favorite_repo, cart_repo).remove("c1", "p1", AsyncMock())

    async def test_add_to_cart_adds_one_unit(self) -> None:
        favorite_repo, cart_repo = _make_repos([Favorite(id="f1", client_id="c1", product=_MUG)])
        db = AsyncMock()

        item = await _make_service(favorite_repo, cart_repo).add_to_cart("c1", "p1", db)

        assert item.quantity == 1
        cart_repo.add_item.assert_awaited_once_with("c1", "p1", 1, db)
        favorite_repo.remove.assert_not_awaited()

    async def test_add_to_cart_requires_favorite(self) -> None:
        favorite_repo, cart_repo = _make_repos()

        with pytest.raises(FavoriteNotFoundError):
            await _make_service(favorite_repo, cart_repo).add_to_cart("c1", "p1", AsyncMock())
        cart_repo.add_item.assert_not_awaited()
