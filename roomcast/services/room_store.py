# roomcast/services/room_store.py
from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Set
import logging

from roomcast.core.errors import PermissionDenied, RoomNotFound
from roomcast.models.models import Message, Room, RoomSummary
from roomcast.services.admin_succession import SuccessionPolicy, select_successor

logger = logging.getLogger(__name__)

ROOM_ID_ALPHABET = string.ascii_lowercase + string.digits
ROOM_ID_LENGTH = 9


def generate_room_id() -> str:
    return "".join(secrets.choice(ROOM_ID_ALPHABET) for _ in range(ROOM_ID_LENGTH))


def now_ms() -> int:
    return int(time.time() * 1000)


# ============================================================================
# OPERATION OUTCOMES
# ============================================================================

class LeaveResult(str, Enum):
    NOOP = "noop"
    LEFT = "left"
    ADMIN_CHANGED = "admin_changed"
    DELETED = "deleted"


@dataclass
class LeaveOutcome:
    kind: LeaveResult
    room: Optional[Room] = None
    participants: int = 0
    new_admin_id: Optional[str] = None


@dataclass
class JoinOutcome:
    room: Room
    messages: List[Message] = field(default_factory=list)
    already_member: bool = False


def _snapshot(room: Room, with_messages: bool = False) -> Room:
    # History is only copied when the caller asks for it
    messages = list(room.messages) if with_messages else []
    return room.model_copy(update={"member_ids": list(room.member_ids), "messages": messages})


# ============================================================================
# ROOM STORE
# ============================================================================

class RoomStore:
    """
    Owns rooms, their membership and their message history.

    Everything here is in-memory and synchronous: no method awaits, so a
    caller holding the coordinator lock sees each operation as atomic. The
    store never talks to connections; mutating methods return an outcome and
    the caller decides what to broadcast.

    Data Structures:
        rooms: Maps room_id -> Room
               Example: {"k3j2h1g0f": Room(name="R1", creator_id="u1", member_ids=["u1", "u2"])}

        user_rooms: Maps user_id -> Set of room_ids the user is a member of
                    Example: {"u1": {"k3j2h1g0f"}, "u2": {"k3j2h1g0f"}}

    Invariants:
        - a room's creator_id is always one of its member_ids
        - a room never stays in ``rooms`` with no members after leave_room
        - user_rooms mirrors member_ids exactly
    """

    def __init__(
        self,
        id_factory: Callable[[], str] = generate_room_id,
        clock: Callable[[], int] = now_ms,
        succession: SuccessionPolicy = select_successor,
    ) -> None:
        self.rooms: Dict[str, Room] = {}
        self.user_rooms: Dict[str, Set[str]] = {}
        # Every id ever handed out, deleted rooms included
        self.issued_ids: Set[str] = set()
        self._id_factory = id_factory
        self._clock = clock
        self._succession = succession

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_room(self, room_id: str, with_messages: bool = True) -> Optional[Room]:
        room = self.rooms.get(room_id)
        return _snapshot(room, with_messages) if room else None

    def rooms_of(self, user_id: str) -> List[str]:
        return sorted(self.user_rooms.get(user_id, set()))

    def list_rooms(self) -> List[RoomSummary]:
        """Room summaries, newest first."""
        # Iterate newest-inserted first so equal timestamps keep that order
        ordered = sorted(
            reversed(list(self.rooms.values())),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return [
            RoomSummary(
                id=room.id,
                name=room.name,
                creator=room.creator_id,
                participants=len(room.member_ids),
                created_at=room.created_at,
            )
            for room in ordered
        ]

    def __len__(self) -> int:
        return len(self.rooms)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_room(self, name: str, creator_id: str) -> Room:
        room_id = self._id_factory()
        while room_id in self.issued_ids:
            room_id = self._id_factory()
        self.issued_ids.add(room_id)

        room = Room(
            id=room_id,
            name=name,
            creator_id=creator_id,
            member_ids=[creator_id],
            created_at=self._clock(),
        )
        self.rooms[room_id] = room
        self.user_rooms.setdefault(creator_id, set()).add(room_id)
        logger.info("✓ Created room: %s (%s) by %s", room.name, room.id, creator_id)
        return _snapshot(room)

    def join_room(self, room_id: str, user_id: str) -> JoinOutcome:
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFound()

        already_member = user_id in room.member_ids
        if not already_member:
            room.member_ids.append(user_id)
            self.user_rooms.setdefault(user_id, set()).add(room_id)
            logger.info("→ %s joined '%s' (%d members)", user_id, room.name, len(room.member_ids))

        return JoinOutcome(
            room=_snapshot(room),
            messages=list(room.messages),
            already_member=already_member,
        )

    def leave_room(self, room_id: str, user_id: str) -> LeaveOutcome:
        """
        Remove a member. The outcome tells the caller which of the three
        follow-ups applies: the room was deleted, the admin changed, or a
        plain departure. Absent room or non-member is a no-op.
        """
        room = self.rooms.get(room_id)
        if room is None or user_id not in room.member_ids:
            return LeaveOutcome(kind=LeaveResult.NOOP)

        room.member_ids.remove(user_id)
        self._unindex(user_id, room_id)

        if not room.member_ids:
            del self.rooms[room_id]
            logger.info("✗ Room '%s' (%s) deleted, no users left", room.name, room_id)
            return LeaveOutcome(kind=LeaveResult.DELETED, room=_snapshot(room))

        if room.creator_id == user_id:
            room.creator_id = self._succession(list(room.member_ids))
            logger.info("Admin of '%s' passed from %s to %s", room.name, user_id, room.creator_id)
            return LeaveOutcome(
                kind=LeaveResult.ADMIN_CHANGED,
                room=_snapshot(room),
                participants=len(room.member_ids),
                new_admin_id=room.creator_id,
            )

        return LeaveOutcome(
            kind=LeaveResult.LEFT,
            room=_snapshot(room),
            participants=len(room.member_ids),
        )

    def delete_room(self, room_id: str, requester_id: str) -> Room:
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFound()
        if room.creator_id != requester_id:
            raise PermissionDenied("Only room creator can delete this room")

        self._drop(room)
        logger.info("✓ Deleted room: %s (%s)", room.name, room_id)
        return _snapshot(room)

    def append_message(self, room_id: str, message: Message) -> Room:
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFound()
        if message.sender_id not in room.member_ids:
            raise PermissionDenied("You are not a member of this room")

        room.messages.append(message)
        return _snapshot(room)

    def clear_messages(self, room_id: str, requester_id: str) -> Room:
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFound()
        if requester_id not in room.member_ids:
            raise PermissionDenied("Only room members can clear the chat")

        room.messages = []
        logger.info("Chat cleared in '%s' by %s", room.name, requester_id)
        return _snapshot(room)

    def evict_idle(self, max_age_ms: int, now: Optional[int] = None) -> List[str]:
        """
        Remove rooms that are empty and older than ``max_age_ms`` (age is
        measured from creation).
        """
        if now is None:
            now = self._clock()
        expired = [
            room_id
            for room_id, room in self.rooms.items()
            if not room.member_ids and now - room.created_at > max_age_ms
        ]
        for room_id in expired:
            self._drop(self.rooms[room_id])
        return expired

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _drop(self, room: Room) -> None:
        del self.rooms[room.id]
        for member_id in room.member_ids:
            self._unindex(member_id, room.id)

    def _unindex(self, user_id: str, room_id: str) -> None:
        joined = self.user_rooms.get(user_id)
        if joined is None:
            return
        joined.discard(room_id)
        if not joined:
            del self.user_rooms[user_id]
