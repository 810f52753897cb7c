"""
Message API Endpoints
=====================

- GET  /api/v1/cases/{case_id}/messages        - Full history, oldest first
- POST /api/v1/cases/{case_id}/messages        - Send a message
- GET  /api/v1/cases/{case_id}/messages/stats  - Count and last message time
- WS   /ws/cases/{case_id}/messages?token=...  - Live feed

The live feed sends the whole ordered list on connect and again after every
insert notification. It never sends deltas.
"""

import asyncio
import logging
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from . import messages as message_service
from .auth import AuthContext, AuthService
from .db.session import get_db_session
from .deps import auth_from_token, get_db_dependency, require_auth
from .errors import NotFoundError
from .middleware import ACCESS_COOKIE
from .realtime import get_hub
from .schemas import SendMessageRequest, MessageStatsResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messages"])
ws_router = APIRouter()

# Application close codes for the live feed
WS_UNAUTHORIZED = 4401
WS_NOT_FOUND = 4404


@router.get("/cases/{case_id}/messages")
async def list_messages(case_id: str, auth: AuthContext = Depends(require_auth),
                        db: Session = Depends(get_db_dependency)):
    return [message_service.message_to_dict(m) for m in message_service.list_messages(db, auth, case_id)]


@router.post("/cases/{case_id}/messages", status_code=201)
async def send_message(
    case_id: str,
    request: SendMessageRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db_dependency),
):
    message = message_service.send_message(db, auth, case_id, request.content, request.type.value)
    return message_service.message_to_dict(message)


@router.get("/cases/{case_id}/messages/stats", response_model=MessageStatsResponse)
async def message_stats(case_id: str, auth: AuthContext = Depends(require_auth),
                        db: Session = Depends(get_db_dependency)):
    return message_service.message_stats(db, auth, case_id)


def _snapshot(auth: AuthContext, case_id: str) -> Dict[str, Any]:
    """Re-run the gate and load the full message list."""
    with get_db_session() as db:
        messages = message_service.list_messages(db, auth, case_id)
        return {
            "type": "messages",
            "case_id": case_id,
            "messages": [message_service.message_to_dict(m) for m in messages],
        }


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Drain client frames until the socket goes away."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return
    except (RuntimeError, KeyError) as e:
        # Binary frame or a socket that is already closed; end the feed either way
        logger.warning(f"Live feed receive failed, closing: {e!r}")


@ws_router.websocket("/ws/cases/{case_id}/messages")
async def ws_case_messages(websocket: WebSocket, case_id: str, token: Optional[str] = None):
    """
    Live message feed for one case.

    The subscription is registered before the first snapshot is sent, so no
    insert can fall between the two. It is released when the socket closes.
    """
    token = token or websocket.cookies.get(ACCESS_COOKIE)
    await websocket.accept()

    with get_db_session() as db:
        auth = auth_from_token(db, token)
        allowed = auth is not None and _case_visible(db, auth, case_id)

    if auth is None:
        await websocket.close(code=WS_UNAUTHORIZED)
        return
    if not allowed:
        await websocket.close(code=WS_NOT_FOUND)
        return

    async with get_hub().subscribe(case_id) as subscription:
        disconnect = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            await websocket.send_json(_snapshot(auth, case_id))
            while True:
                next_event = asyncio.create_task(subscription.next_event())
                done, _ = await asyncio.wait(
                    {disconnect, next_event}, return_when=asyncio.FIRST_COMPLETED
                )
                if disconnect in done:
                    next_event.cancel()
                    break
                try:
                    snapshot = _snapshot(auth, case_id)
                except NotFoundError:
                    # Participant was removed while watching
                    await websocket.close(code=WS_NOT_FOUND)
                    break
                await websocket.send_json(snapshot)
        except WebSocketDisconnect:
            pass
        finally:
            disconnect.cancel()
    logger.debug(f"Live feed closed for case {case_id}")


def _case_visible(db: Session, auth: AuthContext, case_id: str) -> bool:
    try:
        AuthService(db).require_case_access(auth, case_id)
    except NotFoundError:
        return False
    return True
