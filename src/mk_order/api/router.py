# src/mk_order/api/router.py
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.database import get_db_session
from src.mk_common.enums import OrderStatus
from src.mk_common.identity import Identity
from src.mk_gateway.auth.dependencies import get_current_identity
from src.mk_order.application.schemas import (
    OrderCountsResponse,
    OrderListResponse,
    TransitionRequest,
    TransitionResponse,
)
from src.mk_order.application.service import OrderApplicationService
from src.mk_realtime.feed.factory import get_change_feed
from src.mk_realtime.feed.protocol import ChangeFeedProtocol

router = APIRouter(prefix="/orders", tags=["orders"])


def get_order_service(
    feed: Annotated[ChangeFeedProtocol, Depends(get_change_feed)],
) -> OrderApplicationService:
    return OrderApplicationService(feed)


@router.get("", response_model=OrderListResponse)
async def list_orders(
    identity: Annotated[Identity, Depends(get_current_identity)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[OrderApplicationService, Depends(get_order_service)],
    status: OrderStatus | None = Query(None, description="Filter by order status"),
) -> OrderListResponse:
    return await svc.list_orders(identity, status, db)


@router.get("/counts", response_model=OrderCountsResponse)
async def get_counts(
    identity: Annotated[Identity, Depends(get_current_identity)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[OrderApplicationService, Depends(get_order_service)],
) -> OrderCountsResponse:
    return await svc.get_counts(identity, db)


@router.post("/{order_id}/transition", response_model=TransitionResponse)
async def transition_order(
    order_id: str,
    req: TransitionRequest,
    identity: Annotated[Identity, Depends(get_current_identity)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[OrderApplicationService, Depends(get_order_service)],
) -> TransitionResponse:
    return await svc.transition(identity, order_id, req.status, db)
