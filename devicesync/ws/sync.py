"""WebSocket handler for real-time device sync notifications."""

import asyncio
import json
import logging

from fastapi import WebSocket, WebSocketDisconnect

from devicesync.api.deps import get_token_service
from devicesync.config import settings
from devicesync.database import new_session
from devicesync.services.device_service import DeviceService
from devicesync.utils.errors import AppError
from devicesync.ws.registry import (
    CLOSE_AUTH_FAILED,
    CLOSE_TRY_AGAIN_LATER,
    Connection,
    ConnectionRegistry,
    make_message,
)

logger = logging.getLogger(__name__)


def authenticate_device(token: str):
    """Verify a device token and load its (active) device."""
    with new_session() as session:
        service = DeviceService(session, get_token_service(), settings.max_devices_per_user)
        return service.authenticate(token)


async def websocket_sync(ws: WebSocket, token: str | None = None):
    """WebSocket endpoint for device push notifications.

    Client sends:
      {"type": "ping"}                                   -> server answers "pong"
      {"type": "pong"}                                   (reply to a server "ping")
      {"type": "sync_update", "data": {...}}             (relayed to sibling devices)

    Server pushes:
      {"type": "device_status" | "sync_update" | "conflict_notification" | "ping" | "error", ...}
    """
    registry: ConnectionRegistry = ws.app.state.registry

    if not registry.accepting:
        await ws.close(code=CLOSE_TRY_AGAIN_LATER, reason="Server shutting down")
        return

    # Authenticate before accepting
    if not token:
        logger.warning("WebSocket connection rejected: no token provided")
        await ws.close(code=CLOSE_AUTH_FAILED, reason="Missing token")
        return

    try:
        device = await asyncio.to_thread(authenticate_device, token)
    except AppError as e:
        logger.warning("WebSocket connection rejected: %s", e.message)
        await ws.close(code=CLOSE_AUTH_FAILED, reason=e.message)
        return

    await ws.accept()
    conn = await registry.open(ws, device)

    try:
        while registry.is_open(conn.id):
            data = await ws.receive_text()
            await handle_message(registry, conn, data)
    except WebSocketDisconnect as e:
        registry.discard(conn.id, e.code, "Client disconnected")
    finally:
        registry.discard(conn.id)


async def handle_message(registry: ConnectionRegistry, conn: Connection, data: str) -> None:
    try:
        msg = json.loads(data)
    except json.JSONDecodeError:
        await registry.send_error(conn.id, "Invalid JSON")
        return
    if not isinstance(msg, dict):
        await registry.send_error(conn.id, "Invalid message format")
        return

    msg_type = msg.get("type", "")
    logger.debug("Message %s received on connection %s (device=%s)", msg_type, conn.id, conn.device_id)

    if msg_type == "ping":
        registry.mark_alive(conn.id)
        await registry.send(conn.id, make_message("pong", msg_id=msg.get("id")))
    elif msg_type == "pong":
        registry.mark_alive(conn.id)
    elif msg_type == "sync_update":
        payload = msg.get("data") or {}
        if not isinstance(payload, dict):
            await registry.send_error(conn.id, "sync_update data must be an object")
            return
        await registry.broadcast_sync_update(
            conn.user_id,
            {**payload, "source_device_id": conn.device_id},
            exclude_device_id=conn.device_id,
        )
    else:
        await registry.send_error(conn.id, f"Unknown message type: {msg_type}")
