# src/mk_cart/api/router.py
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_cart.application.schemas import (
    AddCartItemRequest,
    CartItemResponse,
    CartResponse,
    CheckoutResponse,
    RemoveCartItemResponse,
    UpdateQuantityRequest,
)
from src.mk_cart.application.service import CartApplicationService
from src.mk_common.database import get_db_session
from src.mk_common.identity import Identity
from src.mk_gateway.auth.dependencies import require_client
from src.mk_realtime.feed.factory import get_change_feed
from src.mk_realtime.feed.protocol import ChangeFeedProtocol

router = APIRouter(prefix="/cart", tags=["cart"])


def get_cart_service(
    feed: Annotated[ChangeFeedProtocol, Depends(get_change_feed)],
) -> CartApplicationService:
    return CartApplicationService(feed)


@router.get("", response_model=CartResponse)
async def get_cart(
    identity: Annotated[Identity, Depends(require_client)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[CartApplicationService, Depends(get_cart_service)],
) -> CartResponse:
    return await svc.get_cart(identity.id, db)


@router.post("/items", response_model=CartItemResponse, status_code=201)
async def add_item(
    req: AddCartItemRequest,
    identity: Annotated[Identity, Depends(require_client)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[CartApplicationService, Depends(get_cart_service)],
) -> CartItemResponse:
    return await svc.add_item(identity.id, req.product_id, req.quantity, db)


@router.patch("/items/{item_id}", response_model=CartItemResponse)
async def update_quantity(
    item_id: str,
    req: UpdateQuantityRequest,
    identity: Annotated[Identity, Depends(require_client)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[CartApplicationService, Depends(get_cart_service)],
) -> CartItemResponse:
    return await svc.update_quantity(identity.id, item_id, req.quantity, db)


@router.delete("/items/{item_id}", response_model=RemoveCartItemResponse)
async def remove_item(
    item_id: str,
    identity: Annotated[Identity, Depends(require_client)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[CartApplicationService, Depends(get_cart_service)],
) -> RemoveCartItemResponse:
    return await svc.remove_item(identity.id, item_id, db)


@router.post("/checkout", response_model=CheckoutResponse, status_code=201)
async def checkout(
    identity: Annotated[Identity, Depends(require_client)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[CartApplicationService, Depends(get_cart_service)],
) -> CheckoutResponse:
    return await svc.checkout(identity.id, db)
