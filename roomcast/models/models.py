# roomcast/models/models.py
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# ENTITIES
# ============================================================================

class User(BaseModel):
    id: str
    username: str
    avatar: str = ""
    connection_id: Optional[str] = None
    joined_at: datetime


class Message(BaseModel):
    """
    One chat entry. Frozen: history is only ever appended to or cleared.

    Serialized with the wire aliases, e.g.
        {"id": "k3j2...", "userId": "u1", "username": "alice", "avatar": "#f00",
         "type": "text", "content": "hi", "timestamp": "...", "roomId": "r1"}
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    room_id: str = Field(alias="roomId")
    sender_id: str = Field(alias="userId")
    sender_name: str = Field(alias="username")
    avatar: str = ""
    kind: Literal["text", "file"] = Field(default="text", alias="type")
    content: Optional[str] = None
    file_url: Optional[str] = Field(default=None, alias="fileUrl")
    file_name: Optional[str] = Field(default=None, alias="fileName")
    file_size: Optional[int] = Field(default=None, alias="fileSize")
    timestamp: datetime

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Room(BaseModel):
    id: str
    name: str
    creator_id: str
    # Join order is kept; admin succession relies on it
    member_ids: List[str] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)
    created_at: int  # epoch milliseconds


# ============================================================================
# SERVER -> CLIENT
# ============================================================================

class RoomSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    creator: str
    participants: int
    created_at: int = Field(alias="createdAt")


class RoomDetail(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    participants: int
    created_at: int = Field(alias="createdAt")


class CreateRoomResponse(BaseModel):
    id: str


# ============================================================================
# CLIENT -> SERVER
# ============================================================================

class AuthenticatePayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(min_length=1)
    username: str = Field(min_length=1, max_length=64)
    avatar: str = ""


class CreateRoomPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    user_id: str = Field(alias="userId", min_length=1)


class RoomMembershipPayload(BaseModel):
    """Body of join-room and leave-room."""

    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId", min_length=1)
    user_id: Optional[str] = Field(default=None, alias="userId")


class SendMessagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId", min_length=1)
    content: str = Field(min_length=1)


class SendFilePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId", min_length=1)
    file_url: str = Field(alias="fileUrl", min_length=1)
    file_name: str = Field(alias="fileName", min_length=1)
    file_size: int = Field(alias="fileSize", ge=0)
