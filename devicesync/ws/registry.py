"""Registry of live device connections and server-to-device push.

All index updates (connection id, user id, device id) happen synchronously
between awaits, so handlers running on the same event loop never observe a
half-applied change. A device has at most one open connection: opening a
new one closes the previous with ``CLOSE_REPLACED``.

Sockets are duck-typed: anything with async ``send_json(dict)`` and
``close(code=..., reason=...)`` works (Starlette's ``WebSocket`` does).
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_SEND_ERROR = 1011
CLOSE_TRY_AGAIN_LATER = 1013
CLOSE_REPLACED = 4000
CLOSE_AUTH_FAILED = 4001
CLOSE_HEARTBEAT_TIMEOUT = 4008


def _now() -> datetime:
    return datetime.now(timezone.utc)


def make_message(msg_type: str, data: Any = None, msg_id: Optional[str] = None) -> dict:
    """Build a ``{type, id?, data?, timestamp}`` frame."""
    message: dict[str, Any] = {"type": msg_type}
    if msg_id is not None:
        message["id"] = msg_id
    if data is not None:
        message["data"] = data
    message["timestamp"] = _now().isoformat()
    return message


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    socket: Any
    user_id: str
    device_id: str
    device_type: str
    platform: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: ConnectionState = ConnectionState.CONNECTING
    is_alive: bool = True
    last_heartbeat: datetime = field(default_factory=_now)
    connected_at: datetime = field(default_factory=_now)
    close_code: Optional[int] = None
    close_reason: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN


class ConnectionRegistry:
    """Owns every live socket; the only component allowed to close them."""

    def __init__(
        self,
        heartbeat_interval: float = 30.0,
        connection_timeout: float = 60.0,
        log: Optional[logging.Logger] = None,
    ):
        self.heartbeat_interval = heartbeat_interval
        self.connection_timeout = connection_timeout
        self.logger = log or logger
        self._connections: dict[str, Connection] = {}
        self._user_connections: dict[str, set[str]] = {}  # user_id -> connection ids
        self._device_connections: dict[str, str] = {}  # device_id -> connection id
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._accepting = True

    @property
    def accepting(self) -> bool:
        return self._accepting

    # --- lifecycle ---

    async def open(self, socket: Any, device) -> Connection:
        """Register an authenticated, accepted socket for ``device``."""
        conn = Connection(
            socket=socket,
            user_id=device.user_id,
            device_id=device.id,
            device_type=device.device_type,
            platform=device.platform,
        )
        previous = self._device_connections.get(device.id)

        self._connections[conn.id] = conn
        self._user_connections.setdefault(conn.user_id, set()).add(conn.id)
        self._device_connections[conn.device_id] = conn.id
        conn.state = ConnectionState.OPEN

        self.logger.info(
            "Connection %s opened (user=%s, device=%s, type=%s)",
            conn.id,
            conn.user_id,
            conn.device_id,
            conn.device_type,
        )

        if previous and previous != conn.id:
            await self.close(previous, CLOSE_REPLACED, "Replaced by new connection")

        await self._send(conn, make_message("device_status", {"status": "connected", "connection_id": conn.id}))
        return conn

    async def close(self, connection_id: str, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Close a connection from the server side."""
        conn = self._connections.get(connection_id)
        if not conn or conn.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return

        conn.state = ConnectionState.CLOSING
        self._remove(conn)
        try:
            await conn.socket.close(code=code, reason=reason)
        except Exception as e:
            self.logger.debug("Socket for connection %s already gone: %s", connection_id, e)
        self._finish(conn, code, reason)

    def discard(self, connection_id: str, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        """Forget a connection whose socket the peer already closed."""
        conn = self._connections.get(connection_id)
        if not conn or conn.state is ConnectionState.CLOSED:
            return
        self._remove(conn)
        self._finish(conn, code, reason)

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def is_open(self, connection_id: str) -> bool:
        conn = self._connections.get(connection_id)
        return bool(conn and conn.is_open)

    def _remove(self, conn: Connection) -> None:
        self._connections.pop(conn.id, None)
        user_conns = self._user_connections.get(conn.user_id)
        if user_conns is not None:
            user_conns.discard(conn.id)
            if not user_conns:
                del self._user_connections[conn.user_id]
        if self._device_connections.get(conn.device_id) == conn.id:
            del self._device_connections[conn.device_id]

    def _finish(self, conn: Connection, code: int, reason: str) -> None:
        conn.state = ConnectionState.CLOSED
        conn.close_code = code
        conn.close_reason = reason
        self.logger.info(
            "Connection %s closed (user=%s, device=%s, code=%s, reason=%s)",
            conn.id,
            conn.user_id,
            conn.device_id,
            code,
            reason,
        )

    # --- heartbeat ---

    def mark_alive(self, connection_id: str) -> None:
        conn = self._connections.get(connection_id)
        if conn:
            conn.is_alive = True
            conn.last_heartbeat = _now()

    async def heartbeat_tick(self) -> None:
        """Evict connections that missed the previous probe, then probe the rest."""
        for conn in list(self._connections.values()):
            if not conn.is_open:
                continue
            if not conn.is_alive:
                self.logger.info(
                    "Terminating inactive connection %s (device=%s)", conn.id, conn.device_id
                )
                await self.close(conn.id, CLOSE_HEARTBEAT_TIMEOUT, "Heartbeat timeout")
                continue
            conn.is_alive = False
            await self._send(conn, make_message("ping"))

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.heartbeat_tick()
            except Exception:
                self.logger.exception("Heartbeat tick failed")

    def start_heartbeat(self) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="ws-heartbeat")
            self.logger.info("Heartbeat started (interval=%ss)", self.heartbeat_interval)

    async def stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def shutdown(self) -> None:
        """Stop the heartbeat, refuse new connections and close all open ones."""
        self._accepting = False
        await self.stop_heartbeat()
        for connection_id in list(self._connections):
            await self.close(connection_id, CLOSE_GOING_AWAY, "Server shutdown")
        self.logger.info("Connection registry shut down")

    # --- push ---

    async def _send(self, conn: Connection, message: dict) -> bool:
        if not conn.is_open:
            return False
        try:
            # sends slower than connection_timeout count as failures
            await asyncio.wait_for(conn.socket.send_json(message), self.connection_timeout)
            return True
        except Exception as e:
            self.logger.error("Failed to send %s to connection %s: %s", message.get("type"), conn.id, e)
            await self.close(conn.id, CLOSE_SEND_ERROR, "Send error")
            return False

    async def send(self, connection_id: str, message: dict) -> bool:
        conn = self._connections.get(connection_id)
        if not conn:
            return False
        return await self._send(conn, message)

    async def send_error(self, connection_id: str, error_message: str) -> bool:
        return await self.send(connection_id, make_message("error", {"message": error_message}))

    async def broadcast_to_user_devices(
        self,
        user_id: str,
        message: dict,
        exclude_device_id: Optional[str] = None,
    ) -> int:
        """Send ``message`` to every open connection of ``user_id``. Returns deliveries."""
        delivered = 0
        for connection_id in list(self._user_connections.get(user_id, ())):
            conn = self._connections.get(connection_id)
            if not conn or conn.device_id == exclude_device_id:
                continue
            if await self._send(conn, message):
                delivered += 1
        return delivered

    async def broadcast_sync_update(
        self,
        user_id: str,
        data: Any,
        exclude_device_id: Optional[str] = None,
    ) -> int:
        return await self.broadcast_to_user_devices(
            user_id, make_message("sync_update", data), exclude_device_id
        )

    async def notify_conflict(self, user_id: str, data: Any) -> int:
        return await self.broadcast_to_user_devices(user_id, make_message("conflict_notification", data))

    async def notify_device_status(self, device_id: str, data: Any) -> bool:
        connection_id = self._device_connections.get(device_id)
        if not connection_id:
            return False
        return await self.send(connection_id, make_message("device_status", data))

    # --- queries ---

    def is_device_connected(self, device_id: str) -> bool:
        return device_id in self._device_connections

    def get_user_connected_devices(self, user_id: str) -> list[str]:
        return [
            self._connections[cid].device_id
            for cid in self._user_connections.get(user_id, ())
            if cid in self._connections
        ]

    def get_connection_stats(self) -> dict:
        by_device_type: dict[str, int] = {}
        for conn in self._connections.values():
            by_device_type[conn.device_type] = by_device_type.get(conn.device_type, 0) + 1
        return {
            "total_connections": len(self._connections),
            "active_users": len(self._user_connections),
            "connected_devices": len(self._device_connections),
            "by_device_type": by_device_type,
        }
