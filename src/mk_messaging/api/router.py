# src/mk_messaging/api/router.py
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.database import get_db_session
from src.mk_common.identity import Identity
from src.mk_gateway.auth.dependencies import get_current_identity
from src.mk_messaging.application.schemas import (
    ConversationResponse,
    MarkReadResponse,
    MessageResponse,
    SendMessageRequest,
    ThreadListResponse,
)
from src.mk_messaging.application.service import MessagingApplicationService
from src.mk_realtime.feed.factory import get_change_feed
from src.mk_realtime.feed.protocol import ChangeFeedProtocol

router = APIRouter(prefix="/messages", tags=["messages"])


def get_messaging_service(
    feed: Annotated[ChangeFeedProtocol, Depends(get_change_feed)],
) -> MessagingApplicationService:
    return MessagingApplicationService(feed)


@router.get("/threads", response_model=ThreadListResponse)
async def list_threads(
    identity: Annotated[Identity, Depends(get_current_identity)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[MessagingApplicationService, Depends(get_messaging_service)],
) -> ThreadListResponse:
    return await svc.list_threads(identity, db)


@router.post("/threads/{counterpart_id}/read", response_model=MarkReadResponse)
async def mark_thread_read(
    counterpart_id: str,
    identity: Annotated[Identity, Depends(get_current_identity)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[MessagingApplicationService, Depends(get_messaging_service)],
) -> MarkReadResponse:
    return await svc.mark_thread_read(identity, counterpart_id, db)


@router.get("/conversations/{counterpart_id}", response_model=ConversationResponse)
async def open_conversation(
    counterpart_id: str,
    identity: Annotated[Identity, Depends(get_current_identity)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[MessagingApplicationService, Depends(get_messaging_service)],
) -> ConversationResponse:
    return await svc.open_conversation(identity, counterpart_id, db)


@router.post(
    "/conversations/{counterpart_id}", response_model=MessageResponse, status_code=201
)
async def send_message(
    counterpart_id: str,
    req: SendMessageRequest,
    identity: Annotated[Identity, Depends(get_current_identity)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    svc: Annotated[MessagingApplicationService, Depends(get_messaging_service)],
) -> MessageResponse:
    return await svc.send_message(identity, counterpart_id, req.content, db)
