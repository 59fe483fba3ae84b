# roomcast/services/chat_service.py

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar
import logging

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from roomcast.core.config import Settings
from roomcast.core.errors import RoomNotFound, PermissionDenied, ValidationError
from roomcast.models.models import (
    AuthenticatePayload,
    CreateRoomPayload,
    Message,
    RoomDetail,
    RoomMembershipPayload,
    RoomSummary,
    SendFilePayload,
    SendMessagePayload,
    User,
)
from roomcast.services.broadcaster import Broadcaster, JsonSocket
from roomcast.services.disconnect_reaper import DisconnectReaper, PurgeReason
from roomcast.services.identity_registry import IdentityRegistry
from roomcast.services.room_store import LeaveOutcome, LeaveResult, RoomStore

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)

Handler = Callable[[str, Any], Awaitable[None]]


def parse_payload(model: Type[P], data: Any) -> P:
    """Validate an inbound payload, mapping pydantic errors to ours."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid payload: expected an object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        raise ValidationError(f"Invalid payload: {where}: {first.get('msg')}") from e


def parse_room_id(data: Any) -> str:
    """clearChat and deleteRoom carry a bare room id; {"roomId": ...} is accepted too."""
    if isinstance(data, dict):
        data = data.get("roomId")
    if not isinstance(data, str) or not data:
        raise ValidationError("Invalid payload: roomId is required")
    return data


# ============================================================================
# CHAT SERVICE
# ============================================================================

class ChatService:
    """
    Single coordinating unit for rooms and sessions.

    Every inbound wire event maps to exactly one method here. A method
    validates its payload, mutates the registry/store while holding
    ``self.lock``, then queues the resulting events on the broadcaster before
    releasing it. Queueing never suspends, so the lock is never held across
    network I/O, and broadcast order always follows commit order.

    Events (client -> server):
        authenticate, get-rooms, create-room, join-room, sendMessage, sendFile,
        clearChat, deleteRoom, leave-room, logout, typing

    Errors raised from a handler are ``ChatError`` subclasses; the WebSocket
    endpoint turns them into an ``error`` event for the originating
    connection only.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 store: Optional[RoomStore] = None,
                 registry: Optional[IdentityRegistry] = None) -> None:
        self.settings = settings or Settings()
        self.registry = registry if registry is not None else IdentityRegistry()
        self.store = store if store is not None else RoomStore()
        self.broadcaster = Broadcaster(self.registry, queue_size=self.settings.OUTBOUND_QUEUE_SIZE)
        self.reaper = DisconnectReaper(self.settings.GRACE_PERIOD_SECONDS, self.purge_expired)
        self.lock = asyncio.Lock()

        # Metrics
        self.message_counter: int = 0
        self.started_at: datetime = datetime.now(timezone.utc)

        self._handlers: Dict[str, Handler] = {
            "authenticate": self.authenticate,
            "get-rooms": self.get_rooms,
            "create-room": self.create_room,
            "join-room": self.join_room,
            "sendMessage": self.send_message,
            "sendFile": self.send_file,
            "clearChat": self.clear_chat,
            "deleteRoom": self.delete_room,
            "leave-room": self.leave_room,
            "logout": self.logout,
            "typing": self.typing,
        }

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, connection_id: str, websocket: JsonSocket) -> None:
        self.broadcaster.register(connection_id, websocket)

    async def disconnect(self, connection_id: str) -> None:
        """
        Transport loss. Membership is kept; the user is purged only if it
        does not come back within the grace period.
        """
        async with self.lock:
            self.broadcaster.drop(connection_id)
            user = self.registry.unbind(connection_id)
            if user is None or user.connection_id is not None:
                return

            self._notify_departure(user)
            self.reaper.schedule(user.id, connection_id)
            logger.info("User disconnected: %s", user.username)

    async def dispatch(self, connection_id: str, event: str, data: Any = None) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            raise ValidationError(f"Unknown event: {event}")
        await handler(connection_id, data)

    def send_error(self, connection_id: str, message: str) -> None:
        self.broadcaster.send(connection_id, "error", {"message": message})

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def authenticate(self, connection_id: str, data: Any) -> None:
        profile = parse_payload(AuthenticatePayload, data)
        async with self.lock:
            user, displaced = self.registry.authenticate(connection_id, profile)
            # Same user id on a new socket: the pending purge no longer applies
            self.reaper.cancel(user.id)
            if displaced is not None:
                # The previous user lost this socket: same as a transport loss
                self._notify_departure(self.registry.get(displaced))
                self.reaper.schedule(displaced, connection_id)
            self.broadcaster.send(connection_id, "authenticated", {"success": True})
        logger.info("User authenticated: %s", user.username)

    async def logout(self, connection_id: str, data: Any = None) -> None:
        async with self.lock:
            user = self.registry.lookup(connection_id)
            if user is None:
                return
            self.reaper.cancel(user.id)
            self._notify_departure(user)
            self._purge(user, PurgeReason.FATAL)
        logger.info("User logged out: %s", user.username)

    async def purge_expired(self, user_id: str, connection_id: str) -> None:
        """Grace period over: purge unless the user came back meanwhile."""
        async with self.lock:
            user = self.registry.get(user_id)
            if user is None:
                return
            if user.connection_id is not None and user.connection_id != connection_id:
                logger.info("Skip purge of %s: reconnected on %s", user_id, user.connection_id)
                return
            self._purge(user, PurgeReason.TRANSIENT)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def get_rooms(self, connection_id: str, data: Any = None) -> None:
        async with self.lock:
            self.broadcaster.send(connection_id, "rooms-list", self._rooms_payload())

    async def create_room(self, connection_id: str, data: Any) -> None:
        payload = parse_payload(CreateRoomPayload, data)
        async with self.lock:
            user = self.registry.require(connection_id)
            room = self.store.create_room(payload.name, user.id)
            self.broadcaster.send(connection_id, "room-created", {"id": room.id, "name": room.name})
            self._broadcast_rooms_list()

    async def create_room_for(self, name: str, user_id: str) -> str:
        """HTTP create path: same as the socket one, without a connection."""
        async with self.lock:
            room = self.store.create_room(name, user_id)
            self._broadcast_rooms_list()
        return room.id

    async def join_room(self, connection_id: str, data: Any) -> None:
        payload = parse_payload(RoomMembershipPayload, data)
        async with self.lock:
            user = self._require_self(connection_id, payload.user_id)
            outcome = self.store.join_room(payload.room_id, user.id)
            room = outcome.room
            participants = len(room.member_ids)

            self.broadcaster.send(
                connection_id,
                "room-joined",
                {
                    "room": {"id": room.id, "name": room.name, "participants": participants},
                    "messages": [m.to_wire() for m in outcome.messages],
                },
            )
            self.broadcaster.to_room(
                room,
                "user-joined",
                {"username": user.username, "participants": participants},
                exclude_user=user.id,
            )
            self._broadcast_rooms_list()

    async def leave_room(self, connection_id: str, data: Any) -> None:
        payload = parse_payload(RoomMembershipPayload, data)
        async with self.lock:
            user = self._require_self(connection_id, payload.user_id)
            outcome = self.store.leave_room(payload.room_id, user.id)
            self._announce_leave(outcome, user)

    async def delete_room(self, connection_id: str, data: Any) -> None:
        room_id = parse_room_id(data)
        async with self.lock:
            user = self.registry.require(connection_id)
            room = self.store.delete_room(room_id, user.id)
            self.broadcaster.to_all(
                "room-deleted", {"roomId": room.id, "message": f'Room "{room.name}" deleted'}
            )
            self._broadcast_rooms_list()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(self, connection_id: str, data: Any) -> None:
        payload = parse_payload(SendMessagePayload, data)
        if not payload.content.strip():
            raise ValidationError("Message is empty")
        if len(payload.content) > self.settings.MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message too long (max {self.settings.MAX_MESSAGE_LENGTH} characters)"
            )

        async with self.lock:
            user = self.registry.require(connection_id)
            message = self._new_message(user, payload.room_id, kind="text", content=payload.content)
            self._publish(message)

    async def send_file(self, connection_id: str, data: Any) -> None:
        payload = parse_payload(SendFilePayload, data)
        if payload.file_size > self.settings.MAX_FILE_SIZE_BYTES:
            raise ValidationError(
                f"File too large (max {self.settings.MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB)"
            )

        async with self.lock:
            user = self.registry.require(connection_id)
            message = self._new_message(
                user,
                payload.room_id,
                kind="file",
                file_url=payload.file_url,
                file_name=payload.file_name,
                file_size=payload.file_size,
            )
            self._publish(message)

    async def clear_chat(self, connection_id: str, data: Any) -> None:
        room_id = parse_room_id(data)
        async with self.lock:
            user = self.registry.require(connection_id)
            room = self.store.clear_messages(room_id, user.id)
            self.broadcaster.to_room(room, "chatCleared")

    async def typing(self, connection_id: str, data: Any = None) -> None:
        # Received but not relayed to other members
        logger.debug("Typing event from %s ignored", connection_id)

    # ------------------------------------------------------------------
    # Queries and maintenance (HTTP routes, sweeper)
    # ------------------------------------------------------------------

    async def list_rooms(self) -> List[RoomSummary]:
        async with self.lock:
            return self.store.list_rooms()

    async def room_detail(self, room_id: str) -> RoomDetail:
        async with self.lock:
            room = self.store.get_room(room_id, with_messages=False)
        if room is None:
            raise RoomNotFound()
        return RoomDetail(
            id=room.id,
            name=room.name,
            participants=len(room.member_ids),
            created_at=room.created_at,
        )

    async def evict_idle_rooms(self, max_age_ms: int) -> List[str]:
        async with self.lock:
            removed = self.store.evict_idle(max_age_ms)
            if removed:
                self._broadcast_rooms_list()
        return removed

    def shutdown(self) -> None:
        self.reaper.shutdown()
        self.broadcaster.close_all()

    # ------------------------------------------------------------------
    # Internals (callers hold self.lock)
    # ------------------------------------------------------------------

    def _require_self(self, connection_id: str, claimed_user_id: Optional[str]) -> User:
        user = self.registry.require(connection_id)
        if claimed_user_id and claimed_user_id != user.id:
            raise PermissionDenied("userId does not match the authenticated user")
        return user

    def _new_message(self, user: User, room_id: str, **fields: Any) -> Message:
        return Message(
            id=uuid.uuid4().hex,
            room_id=room_id,
            sender_id=user.id,
            sender_name=user.username,
            avatar=user.avatar,
            timestamp=datetime.now(timezone.utc),
            **fields,
        )

    def _publish(self, message: Message) -> None:
        room = self.store.append_message(message.room_id, message)
        self.message_counter += 1
        self.broadcaster.to_room(room, "newMessage", message.to_wire())

    def _announce_leave(self, outcome: LeaveOutcome, user: User, *, update_list: bool = True) -> None:
        room = outcome.room
        if outcome.kind is LeaveResult.NOOP or room is None:
            return

        if outcome.kind is LeaveResult.DELETED:
            self.broadcaster.to_all(
                "room-deleted",
                {"roomId": room.id, "message": f'Room "{room.name}" deleted (no users left)'},
            )
        else:
            if outcome.kind is LeaveResult.ADMIN_CHANGED:
                self.broadcaster.to_room(
                    room, "new-admin", {"roomId": room.id, "newAdmin": outcome.new_admin_id}
                )
            self.broadcaster.to_room(
                room, "user-left", {"username": user.username, "participants": outcome.participants}
            )

        if update_list:
            self._broadcast_rooms_list()

    def _notify_departure(self, user: User) -> None:
        for room_id in self.store.rooms_of(user.id):
            room = self.store.get_room(room_id, with_messages=False)
            if room is not None:
                self.broadcaster.to_room(
                    room, "userLeft", {"username": user.username, "userId": user.id},
                    exclude_user=user.id,
                )

    def _purge(self, user: User, reason: PurgeReason) -> None:
        """Leave every room (cascading), drop the identity, one room-list update."""
        for room_id in self.store.rooms_of(user.id):
            outcome = self.store.leave_room(room_id, user.id)
            self._announce_leave(outcome, user, update_list=False)
        self.registry.remove(user.id)
        self._broadcast_rooms_list()
        logger.info("User purged: %s (%s)", user.username, reason.value)

    def _rooms_payload(self) -> List[dict]:
        return [summary.model_dump(by_alias=True) for summary in self.store.list_rooms()]

    def _broadcast_rooms_list(self) -> None:
        self.broadcaster.to_all("rooms-list", self._rooms_payload())
