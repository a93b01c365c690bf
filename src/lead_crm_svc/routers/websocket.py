from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.websockets import WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from lead_crm_svc.errors import Unauthenticated
from lead_crm_svc.models import get_db
from lead_crm_svc.routers.auth import resolve_user
from lead_crm_svc.utils.websocket_manager import manager

logger = logging.getLogger(__name__)

websocket_router = APIRouter()


@websocket_router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
) -> None:
    """Notification channel for one user. Answers "ping" with "pong"; other input is ignored."""
    try:
        user_id = resolve_user(db, token).id
    except Unauthenticated as e:
        logger.info("Rejected websocket connection: %s", e.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    finally:
        # the session is not needed for the life of the socket
        db.close()

    await manager.connect(websocket, user_id)
    try:
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(e, exc_info=True)
    finally:
        manager.disconnect(websocket, user_id)
