import pytest

from core.relay_handler import RelayProtocolHandler, is_valid_transition
from core.order_ledger import OrderStatus
from core.session_archive import SessionArchive
from models import SessionRecord, EventLog

ROOM = "ABCDEF"


def events(deliveries, target=None):
    return [d.event for d in deliveries if target is None or target in d.targets]


def find(deliveries, event):
    matches = [d for d in deliveries if d.event == event]
    assert matches, f"no {event} in {events(deliveries)}"
    return matches[0]


def join(handler, conn_id, role, room=ROOM):
    return handler.handle(conn_id, {"type": "join-room", "roomId": room, "role": role, "username": conn_id})


def seated_room(handler):
    join(handler, "v1", "visitor")
    join(handler, "c1", "chef")
    handler.handle("v1", {"type": "book-table", "roomId": ROOM, "tableSize": 2})


def place(handler, items=None, request_id=None, table_id=1):
    message = {"type": "place-order", "roomId": ROOM, "tableId": table_id,
               "items": items or [{"name": "Burger", "quantity": 1, "price": 15}]}
    if request_id:
        message["requestId"] = request_id
    return handler.handle("v1", message)


def test_join_room_sends_snapshot(handler):
    deliveries = join(handler, "v1", "visitor")
    joined = find(deliveries, "room-joined")
    assert joined.targets == ["v1"]
    assert joined.payload["roomId"] == ROOM
    assert joined.payload["playerData"]["role"] == "visitor"
    assert joined.payload["otherPlayers"] == []
    assert len(joined.payload["tables"]) == 6

    deliveries = join(handler, "c1", "chef")
    assert find(deliveries, "room-joined").payload["otherPlayers"][0]["id"] == "v1"
    assert find(deliveries, "player-joined").targets == ["v1"]


def test_role_taken_and_room_full(handler):
    join(handler, "v1", "visitor")
    taken = join(handler, "v2", "visitor")
    assert events(taken) == ["role-taken"]
    assert taken[0].targets == ["v2"]

    join(handler, "c1", "chef")
    full = join(handler, "c2", "chef")
    assert events(full) == ["room-full"]


def test_duplicate_join_resends_snapshot(handler):
    join(handler, "v1", "visitor")
    again = join(handler, "v1", "visitor")
    assert events(again) == ["room-joined"]
    assert len(handler.store.get_room(ROOM).players) == 1


def test_player_move_relays_to_others(handler):
    join(handler, "v1", "visitor")
    join(handler, "c1", "chef")
    deliveries = handler.handle("v1", {"type": "player-move", "roomId": ROOM,
                                       "position": {"x": 1, "y": 1.6, "z": 2},
                                       "rotation": {"x": 0, "y": 1}})
    moved = find(deliveries, "player-moved")
    assert moved.targets == ["c1"]
    assert moved.payload["position"] == {"x": 1, "y": 1.6, "z": 2}


def test_book_table_first_fit(handler):
    join(handler, "v1", "visitor")
    join(handler, "c1", "chef")
    deliveries = handler.handle("v1", {"type": "book-table", "roomId": ROOM, "tableSize": 2})

    assigned = find(deliveries, "table-assigned")
    assert assigned.targets == ["v1"]
    assert assigned.payload["tableId"] == 1
    assert assigned.payload["position"] == {"x": -6, "z": -6}
    assert find(deliveries, "table-booked").targets == ["c1"]
    assert handler.store.get_room(ROOM).tables.get(1).reserved_by == "v1"


def test_visitor_keeps_existing_table(handler):
    seated_room(handler)
    deliveries = handler.handle("v1", {"type": "book-table", "roomId": ROOM, "tableSize": 6})
    assert find(deliveries, "table-assigned").payload["tableId"] == 1
    room = handler.store.get_room(ROOM)
    assert [t.id for t in room.tables.tables() if t.is_occupied] == [1]


def test_table_unavailable(handler):
    join(handler, "v1", "visitor")
    deliveries = handler.handle("v1", {"type": "book-table", "roomId": ROOM, "tableSize": 8})
    unavailable = find(deliveries, "table-unavailable")
    assert unavailable.payload["message"] == "No tables available, please wait"


def test_chef_cannot_book(handler):
    join(handler, "c1", "chef")
    deliveries = handler.handle("c1", {"type": "book-table", "roomId": ROOM, "tableSize": 2})
    assert events(deliveries) == ["error"]
    assert deliveries[0].payload["request"] == "book-table"


def test_place_order_notifies_both_roles(handler, clock):
    seated_room(handler)
    deliveries = place(handler, table_id=1, items=[{"name": "Burger", "quantity": 2, "price": 30},
                                                   {"name": "Cold Coffee", "quantity": 1, "price": 8}])

    placed = find(deliveries, "order-placed")
    assert placed.targets == ["v1"]
    assert placed.payload["totalPrice"] == 38
    assert placed.payload["estimatedTime"] == 19

    received = find(deliveries, "order-received")
    assert received.targets == ["c1"]
    assert received.payload["orderId"] == placed.payload["orderId"]
    assert received.payload["orderTime"] == clock.now
    assert received.payload["dish"] == "2x Burger, 1x Cold Coffee"

    room = handler.store.get_room(ROOM)
    assert room.inventory.available("Burger") == 3


def test_place_order_legacy_dish_field(handler):
    seated_room(handler)
    deliveries = handler.handle("v1", {"type": "place-order", "roomId": ROOM, "tableId": 1,
                                       "dish": "Pizza", "price": 18})
    assert find(deliveries, "order-received").payload["dish"] == "Pizza"


def test_place_order_rejected_when_out_of_stock(handler):
    seated_room(handler)
    deliveries = place(handler, table_id=1, items=[{"name": "Burger", "quantity": 6, "price": 90}])
    rejected = find(deliveries, "order-rejected")
    assert rejected.payload["reason"] == "unavailable"
    assert handler.store.get_room(ROOM).inventory.available("Burger") == 5
    assert len(handler.store.get_room(ROOM).orders) == 0


def test_place_order_rejected_on_unreserved_table(handler):
    seated_room(handler)
    deliveries = place(handler, table_id=4)
    assert find(deliveries, "order-rejected").payload["reason"] == "table-not-reserved"
    assert handler.store.get_room(ROOM).inventory.available("Burger") == 5


def test_request_id_replays_without_side_effects(handler):
    seated_room(handler)
    first = place(handler, table_id=1, request_id="req-1")
    retry = place(handler, table_id=1, request_id="req-1")

    assert events(retry) == ["order-placed"]
    assert retry[0].payload == find(first, "order-placed").payload
    room = handler.store.get_room(ROOM)
    assert len(room.orders) == 1
    assert room.inventory.available("Burger") == 4


def test_status_updates_reach_visitor(handler):
    seated_room(handler)
    order_id = find(place(handler, table_id=1), "order-placed").payload["orderId"]

    cooking = handler.handle("c1", {"type": "order-status-update", "roomId": ROOM,
                                    "orderId": order_id, "status": "cooking"})
    changed = find(cooking, "order-status-changed")
    assert changed.targets == ["v1"]
    assert changed.payload["status"] == "cooking"

    ready = handler.handle("c1", {"type": "order-completed", "roomId": ROOM, "orderId": order_id,
                                  "completionTime": 7000, "wasOnTime": True})
    assert find(ready, "order-ready").payload["wasOnTime"] is True

    backwards = handler.handle("c1", {"type": "order-status-update", "roomId": ROOM,
                                      "orderId": order_id, "status": "pending"})
    assert events(backwards) == ["error"]

    handler.handle("c1", {"type": "order-status-update", "roomId": ROOM,
                          "orderId": order_id, "status": "served"})
    room = handler.store.get_room(ROOM)
    assert order_id not in room.orders
    assert room.orders.served_count == 1

    # 已 served 的訂單再更新是 no-op
    assert handler.handle("c1", {"type": "order-status-update", "roomId": ROOM,
                                 "orderId": order_id, "status": "served"}) == []


def test_status_transitions():
    assert is_valid_transition(OrderStatus.PENDING, OrderStatus.READY)
    assert is_valid_transition(OrderStatus.COOKING, OrderStatus.CANCELLED)
    assert not is_valid_transition(OrderStatus.READY, OrderStatus.COOKING)
    assert not is_valid_transition(OrderStatus.SERVED, OrderStatus.CANCELLED)


def test_chef_disconnect_refunds_visitor(handler):
    seated_room(handler)
    order_id = find(place(handler, table_id=1), "order-placed").payload["orderId"]

    deliveries = handler.disconnect("c1")
    cancelled = find(deliveries, "order-cancelled")
    assert cancelled.targets == ["v1"]
    assert cancelled.payload["orderId"] == order_id
    assert cancelled.payload["reason"] == "chef-disconnected"
    assert cancelled.payload["refund"] == 15
    assert find(deliveries, "player-left").payload == {"playerId": "c1"}

    room = handler.store.get_room(ROOM)
    assert room.stats.refunds == 15
    assert room.stats.chef_penalty == 50


def test_visitor_disconnect_releases_table(handler):
    seated_room(handler)
    place(handler, table_id=1)

    deliveries = handler.disconnect("v1")
    assert find(deliveries, "order-cancelled").payload["reason"] == "visitor-left"
    assert find(deliveries, "table-released").payload == {"tableId": 1}
    room = handler.store.get_room(ROOM)
    assert room.tables.get(1).is_occupied is False
    assert len(room.orders) == 0


def test_last_player_leaving_resets_room(handler):
    seated_room(handler)
    handler.disconnect("v1")
    handler.disconnect("c1")
    assert ROOM not in handler.store

    deliveries = join(handler, "v2", "visitor")
    tables = find(deliveries, "room-joined").payload["tables"]
    assert not any(table["isOccupied"] for table in tables)


def start_cooking(handler, order_id):
    return handler.handle("c1", {"type": "order-status-update", "roomId": ROOM,
                                 "orderId": order_id, "status": "cooking"})


def test_sweep_cancels_overdue_orders(handler, clock):
    seated_room(handler)
    order_id = find(place(handler, table_id=1), "order-placed").payload["orderId"]

    # 從開始烹飪起算，不是下單時間
    clock.advance(30)
    start_cooking(handler, order_id)

    # Burger：8 秒 * 2 + 5 秒寬限
    assert handler.sweep(clock.now + 21) == []
    deliveries = handler.sweep(clock.now + 21.5)

    cancelled = find(deliveries, "order-cancelled")
    assert sorted(cancelled.targets) == ["c1", "v1"]
    assert cancelled.payload["orderId"] == order_id
    assert cancelled.payload["freeDish"] is True
    room = handler.store.get_room(ROOM)
    assert room.stats.free_dishes == 1
    assert room.stats.chef_penalty == 30


def test_sweep_ignores_orders_the_chef_has_not_started(handler, clock):
    seated_room(handler)
    place(handler, table_id=1)
    place(handler, table_id=1, items=[{"name": "Pizza", "quantity": 1, "price": 18}])

    assert handler.sweep(clock.now + 600) == []
    room = handler.store.get_room(ROOM)
    assert len(room.orders) == 2
    assert room.stats.chef_penalty == 0


def test_sweep_skips_rooms_without_chef(handler, clock):
    join(handler, "v1", "visitor")
    handler.handle("v1", {"type": "book-table", "roomId": ROOM, "tableSize": 2})
    place(handler, table_id=1)

    assert handler.sweep(clock.now + 30) == []
    room = handler.store.get_room(ROOM)
    assert len(room.orders) == 1
    assert room.stats.free_dishes == 0
    assert room.stats.chef_penalty == 0


def test_rating_and_end_session(clock, store, session_factory):
    handler = RelayProtocolHandler(store, archive=SessionArchive(session_factory), clock=clock)
    seated_room(handler)
    order_id = find(place(handler, table_id=1), "order-placed").payload["orderId"]
    handler.handle("c1", {"type": "order-status-update", "roomId": ROOM,
                          "orderId": order_id, "status": "served"})

    rated = handler.handle("v1", {"type": "submit-rating", "roomId": ROOM, "rating": 4})
    assert sorted(find(rated, "rating-submitted").targets) == ["c1", "v1"]

    ended = handler.handle("v1", {"type": "end-session", "roomId": ROOM})
    summary = find(ended, "session-ended")
    assert sorted(summary.targets) == ["c1", "v1"]
    assert summary.payload["stats"]["servedOrders"] == 1
    assert summary.payload["stats"]["revenue"] == 15
    assert summary.payload["stats"]["averageRating"] == 4
    assert ROOM not in store

    # handle() 本身不寫資料庫
    db = session_factory()
    try:
        assert db.query(SessionRecord).count() == 0
    finally:
        db.close()

    assert handler.flush_archives() == 1
    assert handler.flush_archives() == 0

    db = session_factory()
    try:
        record = db.query(SessionRecord).one()
        assert record.room_id == ROOM
        assert record.ratings == [4]
        event_types = [e.event_type for e in db.query(EventLog).all()]
        assert "ORDER_PLACED" in event_types
        assert "SESSION_ENDED" in event_types
    finally:
        db.close()


def test_ping_pong(handler, clock):
    deliveries = handler.handle("v1", {"type": "ping", "sentAt": 123.0})
    assert deliveries[0].event == "pong"
    assert deliveries[0].payload == {"sentAt": 123.0, "serverTime": clock.now}


@pytest.mark.parametrize("raw", [
    {"type": "teleport", "roomId": ROOM},
    {"type": "book-table", "roomId": ROOM},
    {"type": "submit-rating", "roomId": ROOM, "rating": 7},
    {"roomId": ROOM},
    "not a dict",
])
def test_malformed_messages_are_dropped(handler, raw):
    join(handler, "v1", "visitor")
    assert handler.handle("v1", raw) == []
    assert ROOM in handler.store


def test_messages_for_unknown_rooms_are_dropped(handler):
    assert handler.handle("v1", {"type": "tutorial-completed", "roomId": "NOPE"}) == []
