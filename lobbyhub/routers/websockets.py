from __future__ import annotations

import logging
from typing import Optional

import anyio
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ..connections import Session
from ..constants import CLOSE_MISSING_PARAMS
from ..router import MessageRouter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ws"])


@router.websocket("/ws")
async def websocket_endpoint(
    ws: WebSocket,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    username: Optional[str] = Query(default=None),
    avatar_id: str = Query(default="", alias="avatarId"),
    lobby_id: str = Query(default="", alias="lobbyId"),
):
    await ws.accept()
    if not user_id or not username:
        logger.info("Rejected websocket without userId/username")
        await ws.close(code=CLOSE_MISSING_PARAMS)
        return

    lobby_router: MessageRouter = ws.app.state.lobby_router
    session = Session(id=user_id, username=username, avatar_id=avatar_id, websocket=ws)
    await lobby_router.connect(session, lobby_id=lobby_id)

    try:
        while True:
            text = await ws.receive_text()
            await lobby_router.handle_raw(session, text)
    except WebSocketDisconnect:
        logger.info(f"Session {user_id} disconnected")
    except Exception as e:
        logger.warning(f"Error reading from {user_id}: {e}")
    finally:
        # The handler task may already be cancelled (shutdown, client gone);
        # peers still need their leave notifications.
        with anyio.CancelScope(shield=True):
            await lobby_router.disconnect(session)
