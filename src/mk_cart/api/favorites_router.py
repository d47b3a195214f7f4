# src/mk_cart/api/favorites_router.py
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_cart.api.router import get_cart_service
from src.mk_cart.application.favorites import FavoritesApplicationService
from src.mk_cart.application.schemas import (
    AddFavoriteRequest,
    AddFavoriteResponse,
    CartItemResponse,
    FavoriteListResponse,
    RemoveFavoriteResponse,
)
from src.mk_cart.application.service import CartApplicationService
from src.mk_common.database import get_db_session
from src.mk_common.identity import Identity
from src.mk_gateway.auth.dependencies import require_client

router = APIRouter(prefix="/favorites", tags=["favorites"])


def get_favorites_service(
    cart: Annotated[CartApplicationService, Depends(get_cart_service)],
) -> FavoritesApplicationService:
    return FavoritesApplicationService(cart)


@router.get("", response_model=FavoriteListResponse)
async def list_favorites(
    identity: Annotated[Identity, Depends(require_client)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[FavoritesApplicationService, Depends(get_favorites_service)],
) -> FavoriteListResponse:
    return await svc.list_favorites(identity.id, db)


@router.post("", response_model=AddFavoriteResponse, status_code=201)
async def add_favorite(
    req: AddFavoriteRequest,
    identity: Annotated[Identity, Depends(require_client)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[FavoritesApplicationService, Depends(get_favorites_service)],
) -> AddFavoriteResponse:
    return await svc.add(identity.id, req.product_id, db)


@router.delete("/{product_id}", response_model=RemoveFavoriteResponse)
async def remove_favorite(
    product_id: str,
    identity: Annotated[Identity, Depends(require_client)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[FavoritesApplicationService, Depends(get_favorites_service)],
) -> RemoveFavoriteResponse:
    return await svc.remove(identity.id, product_id, db)


@router.post("/{product_id}/cart", response_model=CartItemResponse, status_code=201)
async def add_favorite_to_cart(
    product_id: str,
    identity: Annotated[Identity, Depends(require_client)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[FavoritesApplicationService, Depends(get_favorites_service)],
) -> CartItemResponse:
    return await svc.add_to_cart(identity.id, product_id, db)
