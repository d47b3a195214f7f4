# src/mk_realtime/api/router.py
"""WebSocket endpoint: one SyncSession per connection.

    WS /api/v1/realtime/sync?token=<access token>

Server -> client frames: threads, conversation, orders, order_counts, error.
Client -> server actions:
    {"action": "open_conversation", "counterpart_id": "..."}
    {"action": "close_conversation"}
    {"action": "send", "content": "..."}
"""
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from src.mk_common.errors import InvalidCredentialsError
from src.mk_gateway.auth.jwt_handler import identity_from_token
from src.mk_realtime.application.session import SyncSession
from src.mk_realtime.feed.factory import get_change_feed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])


@router.websocket("/sync")
async def sync(websocket: WebSocket, token: str = Query(...)) -> None:
    try:
        identity = identity_from_token(token)
    except InvalidCredentialsError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    session = SyncSession(identity, await get_change_feed(), websocket.send_json)
    try:
        await session.start()
        while True:
            action = await websocket.receive_json()
            if isinstance(action, dict):
                await session.handle(action)
    except WebSocketDisconnect:
        logger.debug("Sync socket closed by user %s", identity.id)
    finally:
        await session.close()
