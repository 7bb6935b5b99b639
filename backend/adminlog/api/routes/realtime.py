"""
WebSocket endpoint for real-time notifications.

Handshake:
- bearer token from the `token` query parameter, falling back to the
  `Authorization: Bearer <token>` header
- missing or invalid tokens close the socket with 1008 (policy violation)
- on success the server sends `connected` with the resolved identity

Client frames are JSON {"event": <name>, "data": {...}}; `ping` is
answered with `pong`. Anything else is ignored.
"""

import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from adminlog.auth.tokens import TokenError, extract_bearer_token
from adminlog.realtime.hub import EVENT_CONNECTED, EVENT_PING, EVENT_PONG

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket):
    token_service = getattr(websocket.app.state, "token_service", None)
    hub = getattr(websocket.app.state, "hub", None)

    token = websocket.query_params.get("token") or extract_bearer_token(
        websocket.headers.get("authorization")
    )
    if token_service is None or hub is None:
        logger.warning("WebSocket rejected: realtime not configured")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        actor = token_service.verify(token)
    except TokenError as e:
        logger.info("WebSocket rejected: invalid token", extra={"error": str(e)})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    live = hub.registry.register(str(uuid.uuid4()), websocket, actor.id, actor.role)
    logger.info(
        "WebSocket connected",
        extra={"user_id": actor.id, "role": actor.role, "connection_id": live.connection_id},
    )

    try:
        await hub.send(live, EVENT_CONNECTED, {
            "message": "Connected to real-time server",
            "userId": actor.id,
            "role": actor.role,
        })
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                # Binary frames carry nothing this endpoint understands
                continue
            try:
                frame = json.loads(raw)
            except ValueError:
                continue
            if isinstance(frame, dict) and frame.get("event") == EVENT_PING:
                await hub.send(live, EVENT_PONG)
    except WebSocketDisconnect:
        pass
    finally:
        hub.registry.unregister(live.connection_id)
        logger.info(
            "WebSocket disconnected",
            extra={"user_id": actor.id, "connection_id": live.connection_id},
        )
