# roomcast/services/broadcaster.py

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, Optional, Protocol
import logging

from roomcast.models.models import Room
from roomcast.services.identity_registry import IdentityRegistry

logger = logging.getLogger(__name__)


class JsonSocket(Protocol):
    async def send_json(self, data: Any) -> None: ...


def make_frame(event: str, data: Any = None) -> dict:
    """Wire frame shared by both directions: {"event": ..., "data": ...}."""
    return {"event": event, "data": data}


# ============================================================================
# OUTBOUND CONNECTION
# ============================================================================

class ClientConnection:
    """
    One live socket plus its outbound FIFO.

    Frames are queued with ``push`` (never suspends) and written by a
    dedicated writer task, so whoever produces events can do it while holding
    the coordinator lock and each socket still sees them in commit order.
    """

    def __init__(self, connection_id: str, websocket: JsonSocket, broadcaster: "Broadcaster",
                 queue_size: int = 0) -> None:
        self.id = connection_id
        self.websocket = websocket
        self.queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=queue_size)
        self._broadcaster = broadcaster
        self._writer: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._writer = asyncio.create_task(self._drain(), name=f"writer-{self.id}")

    def push(self, frame: dict) -> bool:
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            # Socket is not keeping up: stop delivering to it, no replay
            logger.warning("Outbound queue full on %s, dropping connection", self.id)
            self._broadcaster.drop(self.id)
            return False
        return True

    def stop(self) -> None:
        if self._writer is None or self._writer is asyncio.current_task():
            return
        if not self._writer.done():
            self._writer.cancel()

    async def _drain(self) -> None:
        while True:
            frame = await self.queue.get()
            try:
                await self.websocket.send_json(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Send error on %s: %s", self.id, e)
                # Dead socket: stop delivering to it, no replay
                self._broadcaster.drop(self.id)
                return


# ============================================================================
# BROADCASTER
# ============================================================================

class Broadcaster:
    """
    Fans events out to connections.

    Targets:
        send       -> one connection
        to_room    -> every member of a room that currently has a live connection
        to_all     -> every registered connection, joined to a room or not

    Room delivery resolves members to connections through the identity
    registry, so a user that reconnects on a new socket keeps receiving its
    rooms' events without rejoining.

    Data Structures:
        connections: Maps connection_id -> ClientConnection
                     Example: {"c-1": ClientConnection(...), "c-2": ClientConnection(...)}
    """

    def __init__(self, registry: IdentityRegistry, queue_size: int = 0) -> None:
        self.connections: Dict[str, ClientConnection] = {}
        self.registry = registry
        # 0 means unbounded
        self.queue_size = queue_size

    def register(self, connection_id: str, websocket: JsonSocket) -> ClientConnection:
        connection = ClientConnection(connection_id, websocket, self, queue_size=self.queue_size)
        self.connections[connection_id] = connection
        connection.start()
        logger.info("✓ Connection %s registered. Total: %d", connection_id, len(self.connections))
        return connection

    def drop(self, connection_id: str) -> None:
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return
        connection.stop()
        logger.info("✗ Connection %s dropped. Total: %d", connection_id, len(self.connections))

    def send(self, connection_id: Optional[str], event: str, data: Any = None) -> bool:
        if connection_id is None:
            return False
        connection = self.connections.get(connection_id)
        if connection is None:
            return False
        return connection.push(make_frame(event, data))

    def to_users(self, user_ids: Iterable[str], event: str, data: Any = None,
                 exclude_user: Optional[str] = None) -> int:
        delivered = 0
        frame = make_frame(event, data)
        for user_id in user_ids:
            if user_id == exclude_user:
                continue
            connection = self.connections.get(self.registry.connection_for(user_id) or "")
            if connection is None:
                continue
            if connection.push(frame):
                delivered += 1
        return delivered

    def to_room(self, room: Room, event: str, data: Any = None,
                exclude_user: Optional[str] = None) -> int:
        delivered = self.to_users(room.member_ids, event, data, exclude_user=exclude_user)
        logger.debug("📨 %s to room %s: %d clients", event, room.id, delivered)
        return delivered

    def to_all(self, event: str, data: Any = None) -> int:
        frame = make_frame(event, data)
        return sum(1 for connection in list(self.connections.values()) if connection.push(frame))

    def close_all(self) -> None:
        for connection_id in list(self.connections):
            self.drop(connection_id)

    def __len__(self) -> int:
        return len(self.connections)
