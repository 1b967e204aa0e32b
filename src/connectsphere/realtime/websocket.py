"""WebSocket endpoint — the client side of the broadcast groups.

Learn: Each browser tab connects once to /ws?token=JWT. After the
handshake the client manages its own membership with small JSON
commands:

  {"type": "join-event",  "eventId": "..."}   → event:{id} room
  {"type": "leave-event", "eventId": "..."}
  {"type": "join-user",   "userId": "..."}    → user:{id} room (own id only)
  {"type": "leave-user",  "userId": "..."}
  {"type": "ping"}                            → {"event": "pong"}

Everything the server pushes is a {"event": name, "data": payload} frame
sent by BroadcastService. Disconnecting drops every membership.

Authentication: JWT access token as ?token= query param. In development
mode, unauthenticated connections are allowed (and may join any room).
"""

import json
import uuid
from typing import Any, Optional

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from connectsphere.auth.dependencies import identity_from_token
from connectsphere.auth.jwt import TokenError
from connectsphere.config import settings
from connectsphere.realtime.broadcast import BroadcastService, event_group, user_group

logger = structlog.get_logger()
router = APIRouter()


class SocketConnection:
    """Hashable handle for one accepted WebSocket (Starlette's isn't)."""

    def __init__(self, websocket: Any, user_id: Optional[uuid.UUID] = None):
        self.websocket = websocket
        self.user_id = user_id

    async def send_json(self, data: Any) -> None:
        await self.websocket.send_json(data)


def _frame(event: str, data: Optional[dict] = None) -> dict:
    return {"event": event, "data": data or {}}


def handle_client_message(
    broadcast: BroadcastService, conn: SocketConnection, message: Any
) -> Optional[dict]:
    """Apply one client command. Returns the reply frame, if any."""
    if not isinstance(message, dict):
        return _frame("error", {"message": "Expected a JSON object"})

    kind = message.get("type")
    if kind == "ping":
        return _frame("pong")

    if kind in ("join-event", "leave-event"):
        event_id = message.get("eventId")
        if not event_id:
            return _frame("error", {"message": "eventId is required"})
        if kind == "join-event":
            broadcast.join(conn, event_group(event_id))
        else:
            broadcast.leave(conn, event_group(event_id))
        return None

    if kind in ("join-user", "leave-user"):
        user_id = message.get("userId")
        if not user_id:
            return _frame("error", {"message": "userId is required"})
        if kind == "join-user":
            if conn.user_id is not None and str(user_id) != str(conn.user_id):
                return _frame("error", {"message": "Cannot join another user's room"})
            broadcast.join(conn, user_group(user_id))
        else:
            broadcast.leave(conn, user_group(user_id))
        return None

    return _frame("error", {"message": f"Unknown message type: {kind}"})


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """Long-lived connection: one per browser tab."""
    # ── Authentication ──────────────────────────────────────
    token = websocket.query_params.get("token")
    user_id: Optional[uuid.UUID] = None

    if not token and settings.environment != "development":
        await websocket.close(code=4001, reason="Authentication required")
        return

    if token:
        try:
            user_id = identity_from_token(token).user_id
        except TokenError:
            await websocket.close(code=4001, reason="Invalid or expired token")
            return

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()
    broadcast: BroadcastService = websocket.app.state.broadcast
    conn = SocketConnection(websocket, user_id)
    broadcast.connect(conn)
    logger.info("ws.connected", user_id=str(user_id) if user_id else None)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json(_frame("error", {"message": "Invalid JSON"}))
                continue
            reply = handle_client_message(broadcast, conn, message)
            if reply is not None:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        pass
    finally:
        broadcast.disconnect(conn)
        logger.info("ws.disconnected", user_id=str(user_id) if user_id else None)
