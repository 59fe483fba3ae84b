import asyncio
from typing import Any, List, Optional

import pytest

from roomcast.core.config import Settings
from roomcast.services.chat_service import ChatService

GRACE = 0.05


class FakeSocket:
    """Stands in for a WebSocket: records every frame sent to it."""

    def __init__(self) -> None:
        self.sent: List[dict] = []

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)

    def events(self, name: Optional[str] = None) -> List[Any]:
        return [f["data"] for f in self.sent if name is None or f["event"] == name]

    def names(self) -> List[str]:
        return [f["event"] for f in self.sent]

    def last(self, name: str) -> Any:
        matching = self.events(name)
        assert matching, f"no {name!r} frame in {self.names()}"
        return matching[-1]


async def settle(chat: ChatService) -> None:
    """Let writer tasks drain every outbound queue."""
    for _ in range(200):
        await asyncio.sleep(0)
        if all(c.queue.empty() for c in chat.broadcaster.connections.values()):
            break
    await asyncio.sleep(0)


async def login(chat: ChatService, connection_id: str, user_id: str,
                username: Optional[str] = None) -> FakeSocket:
    sock = FakeSocket()
    chat.connect(connection_id, sock)
    await chat.authenticate(
        connection_id, {"id": user_id, "username": username or user_id, "avatar": "#3f51b5"}
    )
    return sock


async def create_room(chat: ChatService, connection_id: str, sock: FakeSocket, name: str) -> str:
    await chat.create_room(connection_id, {"name": name})
    await settle(chat)
    return sock.last("room-created")["id"]


def assert_creator_is_member(chat: ChatService) -> None:
    for room in chat.store.rooms.values():
        assert room.member_ids
        assert room.creator_id in room.member_ids


@pytest.fixture
def settings() -> Settings:
    return Settings(GRACE_PERIOD_SECONDS=GRACE, SWEEP_INTERVAL_SECONDS=3600)


@pytest.fixture
def chat(settings: Settings) -> ChatService:
    return ChatService(settings=settings)
