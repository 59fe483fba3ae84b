import asyncio

import pytest

from roomcast.services.chat_service import ChatService
from roomcast.services.idle_room_sweeper import IdleRoomSweeper
from roomcast.services.room_store import RoomStore

from conftest import create_room, login, settle


class FakeClock:
    def __init__(self) -> None:
        self.now = 10_000_000

    def __call__(self) -> int:
        return self.now


@pytest.mark.asyncio
async def test_sweep_removes_old_empty_rooms_with_one_list_update(settings) -> None:
    clock = FakeClock()
    chat = ChatService(settings=settings, store=RoomStore(clock=clock))
    a = await login(chat, "c1", "u1")
    observer = await login(chat, "c3", "u3")
    first = await create_room(chat, "c1", a, "first")
    second = await create_room(chat, "c1", a, "second")
    kept = await create_room(chat, "c1", a, "kept")
    for room_id in (first, second):
        chat.store.rooms[room_id].member_ids.clear()
    await settle(chat)
    lists_before = len(observer.events("rooms-list"))

    clock.now += 2 * 3600 * 1000
    sweeper = IdleRoomSweeper(chat.evict_idle_rooms, interval=300, max_age=3600)
    removed = await sweeper.sweep_once()
    await settle(chat)

    assert sorted(removed) == sorted([first, second])
    assert [r["id"] for r in observer.last("rooms-list")] == [kept]
    assert len(observer.events("rooms-list")) == lists_before + 1
    assert observer.events("room-deleted") == []


@pytest.mark.asyncio
async def test_sweep_with_nothing_to_remove_is_silent(chat) -> None:
    a = await login(chat, "c1", "u1")
    await create_room(chat, "c1", a, "busy")
    sent_before = len(a.sent)

    sweeper = IdleRoomSweeper(chat.evict_idle_rooms, interval=300, max_age=0)
    assert await sweeper.sweep_once() == []
    await settle(chat)

    assert len(a.sent) == sent_before


@pytest.mark.asyncio
async def test_loop_runs_periodically_and_survives_failures() -> None:
    calls = []

    async def evict(max_age_ms):
        calls.append(max_age_ms)
        if len(calls) == 1:
            raise RuntimeError("transient")
        return []

    sweeper = IdleRoomSweeper(evict, interval=0.01, max_age=1.5)
    sweeper.start()
    assert sweeper.running
    await asyncio.sleep(0.1)
    await sweeper.stop()

    assert len(calls) >= 2
    assert calls[0] == 1500
    assert not sweeper.running
