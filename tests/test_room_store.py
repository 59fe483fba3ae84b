from datetime import datetime, timezone
from itertools import count

import pytest

from roomcast.core.errors import PermissionDenied, RoomNotFound
from roomcast.models.models import Message
from roomcast.services.admin_succession import select_successor
from roomcast.services.room_store import LeaveResult, RoomStore, generate_room_id


class FakeClock:
    def __init__(self, start: int = 1_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now


def make_store(clock=None, **kwargs) -> RoomStore:
    ids = count(1)
    return RoomStore(id_factory=lambda: f"room{next(ids)}", clock=clock or FakeClock(), **kwargs)


def make_message(room_id: str, sender_id: str, content: str) -> Message:
    return Message(
        id=f"m-{content}",
        room_id=room_id,
        sender_id=sender_id,
        sender_name=sender_id,
        content=content,
        timestamp=datetime.now(timezone.utc),
    )


def assert_invariants(store: RoomStore) -> None:
    for room in store.rooms.values():
        assert room.member_ids
        assert room.creator_id in room.member_ids
        assert len(set(room.member_ids)) == len(room.member_ids)
        for member_id in room.member_ids:
            assert room.id in store.user_rooms[member_id]
    for user_id, room_ids in store.user_rooms.items():
        for room_id in room_ids:
            assert user_id in store.rooms[room_id].member_ids


def test_generate_room_id_shape() -> None:
    room_id = generate_room_id()
    assert len(room_id) == 9
    assert room_id.isalnum() and room_id.lower() == room_id


def test_create_room_retries_on_id_collision() -> None:
    ids = iter(["dup", "dup", "fresh"])
    store = RoomStore(id_factory=lambda: next(ids))
    first = store.create_room("A", "u1")
    second = store.create_room("B", "u2")
    assert (first.id, second.id) == ("dup", "fresh")


def test_create_room_makes_creator_sole_member() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    assert room.creator_id == "u1"
    assert room.member_ids == ["u1"]
    assert room.messages == []
    assert store.rooms_of("u1") == [room.id]
    assert_invariants(store)


def test_join_is_idempotent_and_returns_history() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    store.append_message(room.id, make_message(room.id, "u1", "hello"))

    first = store.join_room(room.id, "u2")
    again = store.join_room(room.id, "u2")

    assert first.already_member is False
    assert again.already_member is True
    assert again.room.member_ids == ["u1", "u2"]
    assert [m.content for m in first.messages] == ["hello"]
    assert_invariants(store)


def test_join_missing_room() -> None:
    store = make_store()
    with pytest.raises(RoomNotFound):
        store.join_room("nope", "u1")


def test_snapshots_do_not_leak_internal_state() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    room.member_ids.append("intruder")
    assert store.get_room(room.id).member_ids == ["u1"]


def test_last_member_leaving_deletes_room() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")

    outcome = store.leave_room(room.id, "u1")

    assert outcome.kind is LeaveResult.DELETED
    assert outcome.room.name == "R1"
    assert store.get_room(room.id) is None
    assert store.rooms_of("u1") == []
    assert_invariants(store)


def test_creator_leaving_passes_admin_to_earliest_joined() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    store.join_room(room.id, "u2")
    store.join_room(room.id, "u3")

    outcome = store.leave_room(room.id, "u1")

    assert outcome.kind is LeaveResult.ADMIN_CHANGED
    assert outcome.new_admin_id == "u2"
    assert outcome.participants == 2
    assert store.get_room(room.id).creator_id == "u2"

    outcome = store.leave_room(room.id, "u2")
    assert outcome.new_admin_id == "u3"
    assert_invariants(store)


def test_custom_succession_policy() -> None:
    store = make_store(succession=lambda remaining: remaining[-1])
    room = store.create_room("R1", "u1")
    for user_id in ("u2", "u3", "u4"):
        store.join_room(room.id, user_id)

    outcome = store.leave_room(room.id, "u1")

    assert outcome.new_admin_id == "u4"


def test_select_successor_requires_members() -> None:
    assert select_successor(["a", "b"]) == "a"
    with pytest.raises(ValueError):
        select_successor([])


def test_plain_member_leaving() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    store.join_room(room.id, "u2")

    outcome = store.leave_room(room.id, "u2")

    assert outcome.kind is LeaveResult.LEFT
    assert outcome.participants == 1
    assert store.get_room(room.id).creator_id == "u1"


def test_leave_unknown_room_or_non_member_is_noop() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    assert store.leave_room("nope", "u1").kind is LeaveResult.NOOP
    assert store.leave_room(room.id, "stranger").kind is LeaveResult.NOOP
    assert store.get_room(room.id).member_ids == ["u1"]


def test_delete_room_requires_creator() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    store.join_room(room.id, "u2")

    with pytest.raises(PermissionDenied):
        store.delete_room(room.id, "u2")
    with pytest.raises(RoomNotFound):
        store.delete_room("nope", "u1")

    deleted = store.delete_room(room.id, "u1")
    assert deleted.id == room.id
    assert len(store) == 0
    assert store.user_rooms == {}


def test_append_message_keeps_arrival_order() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    store.join_room(room.id, "u2")
    for sender, text in [("u1", "a"), ("u2", "b"), ("u1", "c")]:
        store.append_message(room.id, make_message(room.id, sender, text))

    assert [m.content for m in store.get_room(room.id).messages] == ["a", "b", "c"]


def test_append_message_errors() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    with pytest.raises(RoomNotFound):
        store.append_message("nope", make_message("nope", "u1", "x"))
    with pytest.raises(PermissionDenied):
        store.append_message(room.id, make_message(room.id, "outsider", "x"))


def test_clear_then_join_returns_empty_history() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    store.join_room(room.id, "u2")
    store.append_message(room.id, make_message(room.id, "u1", "hello"))

    store.clear_messages(room.id, "u2")

    assert store.join_room(room.id, "u3").messages == []


def test_clear_requires_membership() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    with pytest.raises(PermissionDenied):
        store.clear_messages(room.id, "outsider")
    with pytest.raises(RoomNotFound):
        store.clear_messages("nope", "u1")


def test_list_rooms_newest_first() -> None:
    clock = FakeClock()
    store = make_store(clock=clock)
    store.create_room("old", "u1")
    clock.now += 10
    store.create_room("new", "u2")
    store.create_room("newer-same-ms", "u3")
    store.join_room("room1", "u2")

    listing = store.list_rooms()

    assert [r.name for r in listing] == ["newer-same-ms", "new", "old"]
    assert listing[2].participants == 2
    assert listing[2].creator == "u1"
    assert listing[0].model_dump(by_alias=True)["createdAt"] == clock.now


def test_evict_idle_only_removes_old_empty_rooms() -> None:
    clock = FakeClock()
    store = make_store(clock=clock)
    old_empty = store.create_room("old-empty", "u1")
    old_busy = store.create_room("old-busy", "u2")
    clock.now += 5_000
    young_empty = store.create_room("young-empty", "u3")

    # Rooms emptied outside leave_room, e.g. restored without their members
    for room_id in (old_empty.id, young_empty.id):
        store.rooms[room_id].member_ids.clear()

    removed = store.evict_idle(max_age_ms=4_000)

    assert removed == [old_empty.id]
    assert store.get_room(old_busy.id) is not None
    assert store.get_room(young_empty.id) is not None

    clock.now += 5_000
    assert store.evict_idle(max_age_ms=4_000) == [young_empty.id]


def test_deleted_room_id_is_never_reissued() -> None:
    ids = iter(["same", "same", "other"])
    store = RoomStore(id_factory=lambda: next(ids))
    first = store.create_room("A", "u1")
    store.delete_room(first.id, "u1")

    second = store.create_room("B", "u1")

    assert second.id == "other"
    assert "same" in store.issued_ids


def test_mutation_snapshots_leave_history_out() -> None:
    store = make_store()
    room = store.create_room("R1", "u1")
    store.append_message(room.id, make_message(room.id, "u1", "a"))
    appended = store.append_message(room.id, make_message(room.id, "u1", "b"))

    assert appended.messages == []
    assert store.get_room(room.id, with_messages=False).messages == []
    assert [m.content for m in store.get_room(room.id).messages] == ["a", "b"]
    assert [m.content for m in store.join_room(room.id, "u2").messages] == ["a", "b"]
