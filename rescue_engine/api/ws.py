"""WebSocket notification channel with JWT auth."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from rescue_engine.core.security import user_id_from_token
from rescue_engine.services.stream_hub import UserSubscription, stream_hub

logger = logging.getLogger(__name__)

router = APIRouter()

# Sent when the notification channel stops; the client should reconnect
CLOSE_CHANNEL_ENDED = 1013
CLOSE_SEND_FAILED = 1011


async def _forward(websocket: WebSocket, sub: UserSubscription) -> None:
    async for event in sub:
        await websocket.send_text(json.dumps({"event": "notification", "data": event}, default=str))


async def _receive(websocket: WebSocket) -> None:
    while True:
        data = await websocket.receive_text()
        # Echo pong for heartbeat
        if data == "ping":
            await websocket.send_text('{"event":"pong"}')


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint. Client connects with ?token=<jwt>.
    Server pushes {"event": "notification", "data": {...}} frames and closes
    with 1013 when the notification channel ends (e.g. a slow reader).
    """
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4001, reason="Missing token")
        return

    user_id = user_id_from_token(token)
    if user_id is None:
        await websocket.close(code=4003, reason="Invalid or expired token")
        return

    await websocket.accept()
    sub = stream_hub.subscribe_user(user_id)
    forwarder = asyncio.create_task(_forward(websocket, sub))
    receiver = asyncio.create_task(_receive(websocket))
    try:
        done, _ = await asyncio.wait({forwarder, receiver}, return_when=asyncio.FIRST_COMPLETED)
        if forwarder in done:
            exc = forwarder.exception()
            if exc is not None:
                logger.warning("WS send failed: user=%s: %s", user_id, exc)
                code, reason = CLOSE_SEND_FAILED, "Notification delivery failed"
            else:
                logger.info("WS notification channel ended: user=%s state=%s", user_id, sub.state.value)
                code, reason = CLOSE_CHANNEL_ENDED, "Notification channel closed, reconnect"
            if websocket.client_state is WebSocketState.CONNECTED:
                try:
                    await websocket.close(code=code, reason=reason)
                except (RuntimeError, WebSocketDisconnect) as close_exc:
                    logger.debug("WS already gone: user=%s: %s", user_id, close_exc)
        else:
            exc = receiver.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("WS receive failed: user=%s: %s", user_id, exc)
    finally:
        forwarder.cancel()
        receiver.cancel()
        stream_hub.unsubscribe(sub)
        logger.info("WS disconnected: user=%s", user_id)
