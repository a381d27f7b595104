import pytest

from core.exceptions import RoomFull, RoleTaken, RoomNotFound
from core.session_store import PlayerRole, SPAWN_POSITIONS


def test_create_or_get_room_returns_same_room(store):
    room = store.create_or_get_room("ABCDEF")
    assert store.create_or_get_room("ABCDEF") is room
    assert len(room.tables.tables()) == 6
    assert len(room.orders) == 0
    assert room.events[0]["event_type"] == "ROOM_CREATED"


def test_add_player_uses_role_spawn_position(store):
    room = store.create_or_get_room("ABCDEF")
    chef = store.add_player(room, PlayerRole.CHEF, "c1", "Gordon")
    assert chef.position == SPAWN_POSITIONS[PlayerRole.CHEF]
    assert chef.to_payload()["role"] == "chef"


def test_role_is_exclusive(store):
    room = store.create_or_get_room("ABCDEF")
    store.add_player(room, PlayerRole.VISITOR, "v1")
    with pytest.raises(RoleTaken):
        store.add_player(room, PlayerRole.VISITOR, "v2")


def test_room_capacity_is_two(store):
    room = store.create_or_get_room("ABCDEF")
    store.add_player(room, PlayerRole.VISITOR, "v1")
    store.add_player(room, PlayerRole.CHEF, "c1")
    with pytest.raises(RoomFull):
        store.add_player(room, PlayerRole.CHEF, "c2")


def test_room_deleted_when_last_player_leaves(store):
    room = store.create_or_get_room("ABCDEF")
    store.add_player(room, PlayerRole.VISITOR, "v1")
    store.add_player(room, PlayerRole.CHEF, "c1")

    store.remove_player(room, "v1")
    assert "ABCDEF" in store

    store.remove_player(room, "c1")
    assert "ABCDEF" not in store
    with pytest.raises(RoomNotFound):
        store.get_room("ABCDEF")


def test_rooms_are_isolated(store):
    first = store.create_or_get_room("AAAAAA")
    second = store.create_or_get_room("BBBBBB")
    first.tables.reserve(1, "v1")
    assert second.tables.get(1).is_occupied is False


def test_rooms_for_connection(store):
    room = store.create_or_get_room("ABCDEF")
    store.add_player(room, PlayerRole.CHEF, "c1")
    assert store.rooms_for_connection("c1") == [room]
    assert store.rooms_for_connection("nobody") == []


def test_snapshot_contains_tables_and_menu(store):
    room = store.create_or_get_room("ABCDEF")
    store.add_player(room, PlayerRole.VISITOR, "v1", "Alice")
    snapshot = store.snapshot(room)
    assert snapshot["roomId"] == "ABCDEF"
    assert [p["username"] for p in snapshot["players"]] == ["Alice"]
    assert [t["id"] for t in snapshot["tables"]] == [1, 2, 3, 4, 5, 6]
    assert any(item["name"] == "Burger" for item in snapshot["menu"])
