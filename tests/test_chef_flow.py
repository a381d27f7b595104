from flows.chef_flow import ChefOrder, ChefPhase, ChefPhaseMachine


def ready_chef():
    machine = ChefPhaseMachine()
    machine.update_position({"x": 0, "z": -12})
    machine.complete_tutorial()
    return machine


def order(order_id="order_1", dish="Caesar Salad", estimated=10, order_time=0.0):
    return ChefOrder(id=order_id, dish=dish, table_id=1, order_time=order_time, estimated_time=estimated)


def test_entering_kitchen_starts_tutorial():
    machine = ChefPhaseMachine()
    assert machine.update_position({"x": 20, "z": 20}) is False
    assert machine.phase == ChefPhase.SPAWN
    assert machine.update_position({"x": 1, "z": -11}) is True
    assert machine.phase == ChefPhase.TUTORIAL
    assert machine.state.is_in_kitchen


def test_cooking_auto_transitions_to_serving():
    machine = ready_chef()
    assert machine.receive_order(order(estimated=10), now=100.0)
    assert machine.phase == ChefPhase.COOKING

    assert machine.update_cooking_progress(105.0) is False
    assert machine.state.cooking_progress == 50.0

    assert machine.update_cooking_progress(110.0) is True
    state = machine.state
    assert state.phase == ChefPhase.SERVING
    assert state.cooking_progress == 100.0
    assert state.time_remaining == 0.0
    # Caesar Salad 基礎 80 分 + floor(10 * 10)
    assert state.last_earned == 180
    assert state.score == 180
    assert state.completed_orders == 1


def test_serve_order_reports_timing():
    machine = ready_chef()
    machine.receive_order(order(estimated=10, order_time=100.0), now=100.0)
    machine.update_cooking_progress(110.0)

    served = machine.serve_order(now=112.0)
    assert served.order_id == "order_1"
    assert served.completion_time_ms == 12000
    assert served.was_on_time is False
    assert machine.phase == ChefPhase.WAITING_FOR_ORDER
    assert machine.serve_order(now=113.0) is None


def test_orders_queue_while_busy():
    machine = ready_chef()
    machine.receive_order(order("order_1", estimated=5), now=0.0)
    assert machine.receive_order(order("order_2", estimated=5), now=1.0) is False
    assert [o.id for o in machine.state.pending_orders] == ["order_2"]

    machine.update_cooking_progress(5.0)
    machine.serve_order(now=6.0)
    assert machine.phase == ChefPhase.COOKING
    assert machine.state.current_order.id == "order_2"


def test_orders_during_tutorial_start_after_it():
    machine = ChefPhaseMachine()
    machine.update_position({"x": 0, "z": -12})
    machine.receive_order({"orderId": "order_1", "dish": "Burger", "tableId": 2,
                           "orderTime": 0.0, "estimatedTime": 8}, now=0.0)
    assert machine.phase == ChefPhase.TUTORIAL

    machine.complete_tutorial(now=3.0)
    assert machine.phase == ChefPhase.COOKING
    assert machine.state.tutorial_completed


def test_duplicate_order_is_ignored():
    machine = ready_chef()
    machine.receive_order(order("order_1"), now=0.0)
    assert machine.receive_order(order("order_1"), now=0.5) is False
    assert machine.state.pending_orders == []


def test_cancelled_current_order():
    machine = ready_chef()
    machine.receive_order(order("order_1"), now=0.0)
    assert machine.order_cancelled("order_1", now=2.0)
    assert machine.phase == ChefPhase.WAITING_FOR_ORDER
    assert machine.state.current_order is None
    assert machine.order_cancelled("order_1", now=3.0) is False


def test_end_session():
    machine = ready_chef()
    assert machine.end_session()
    assert machine.receive_order(order(), now=0.0) is False
    assert machine.phase == ChefPhase.COMPLETE
