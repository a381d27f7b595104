from flows.progress import cooking_progress, calculate_order_score
from flows.proximity import nearest_npc, is_within, ENTRANCE_DOOR, ENTRANCE_RADIUS
from services.compensation_service import CancelReason, compensation_for, is_cooking_timed_out
from services.menu_catalog import get_cooking_time, get_dish_score


def test_cooking_progress():
    assert cooking_progress(5, 10) == (50.0, 5.0)
    assert cooking_progress(12, 10) == (100.0, 0.0)
    assert cooking_progress(0, 0) == (100.0, 0.0)


def test_order_score():
    assert calculate_order_score(80, 10, 10) == 80
    assert calculate_order_score(150, 10, 0) == 250
    assert calculate_order_score(100, 10, 2.55) == 174


def test_catalog_fallbacks():
    assert get_cooking_time("Tomato Soup") == 12
    assert get_cooking_time("Mystery Stew") == 10
    assert get_dish_score("Grilled Steak") == 150
    assert get_dish_score("2x Burger") == 100


def test_proximity():
    assert nearest_npc({"x": -8, "z": 10}) == "receptionist"
    assert nearest_npc({"x": 3, "z": -7}) == "waiter"
    assert nearest_npc({"x": 20, "z": 20}) is None
    # 訪客出生點不在門口範圍內
    assert not is_within({"x": -8, "z": 10}, ENTRANCE_DOOR, ENTRANCE_RADIUS)


def test_compensation():
    chef_left = compensation_for(38, CancelReason.CHEF_DISCONNECTED)
    assert (chef_left.refund, chef_left.chef_penalty, chef_left.free_dish) == (38, 50, False)

    timeout = compensation_for(15, CancelReason.COOKING_TIMEOUT)
    assert (timeout.refund, timeout.chef_penalty, timeout.free_dish) == (15, 30, True)

    requested = compensation_for(15, CancelReason.REQUESTED)
    assert requested.refund == 0


def test_cooking_timeout():
    assert not is_cooking_timed_out(0, 10, 25, factor=2, grace=5)
    assert is_cooking_timed_out(0, 10, 25.1, factor=2, grace=5)
