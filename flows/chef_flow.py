"""
Chef Phase Machine：廚師端的流程狀態機（client-local mirror）

流程：
spawn -> tutorial -> waiting_for_order -> cooking -> serving -> waiting_for_order（循環）
session 結束時進入 complete

重點：
- 烹飪進度由 render tick 取樣 update_cooking_progress(now) 推進，
  進度到 100% 自動轉入 serving 並計分（不需要玩家動作）
- serving -> waiting_for_order 需要明確的 serve_order()
- 忙碌時收到的訂單先排隊，上一道送出後自動開始下一道
"""
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Mapping, Optional, Union
import logging

from flows.progress import cooking_progress, calculate_order_score
from flows.proximity import KITCHEN, KITCHEN_RADIUS, is_within
from services.menu_catalog import get_dish_score

logger = logging.getLogger(__name__)


class ChefPhase(str, Enum):
    SPAWN = "spawn"
    TUTORIAL = "tutorial"
    WAITING_FOR_ORDER = "waiting_for_order"
    COOKING = "cooking"
    SERVING = "serving"
    COMPLETE = "complete"


@dataclass
class ChefOrder:
    id: str
    dish: str
    table_id: int
    order_time: float
    estimated_time: float

    @classmethod
    def from_payload(cls, payload: Mapping) -> "ChefOrder":
        """從 order-received 事件建立"""
        return cls(
            id=payload["orderId"],
            dish=payload["dish"],
            table_id=payload["tableId"],
            order_time=payload.get("orderTime", 0.0),
            estimated_time=payload["estimatedTime"],
        )


@dataclass
class ChefState:
    phase: ChefPhase = ChefPhase.SPAWN
    current_order: Optional[ChefOrder] = None
    cooking_progress: float = 0.0
    time_remaining: float = 0.0
    score: int = 0
    completed_orders: int = 0
    is_in_kitchen: bool = False
    tutorial_completed: bool = False
    last_earned: int = 0
    pending_orders: List[ChefOrder] = field(default_factory=list)


@dataclass(frozen=True)
class ServedOrder:
    """serve_order() 的結果，用來送出 order-completed / order-status-update"""
    order_id: str
    completion_time_ms: float
    was_on_time: bool


class ChefPhaseMachine:

    def __init__(
        self,
        on_state_change: Optional[Callable[[ChefState], None]] = None,
        dish_score: Callable[[str], int] = get_dish_score,
    ):
        self._on_state_change = on_state_change
        self._dish_score = dish_score
        self._state = ChefState()
        self._cooking_start = 0.0

    @property
    def state(self) -> ChefState:
        return copy.deepcopy(self._state)

    @property
    def phase(self) -> ChefPhase:
        return self._state.phase

    # ============ 廚房 / 教學 ============

    def update_position(self, position: Mapping[str, float]) -> bool:
        """
        更新是否在廚房範圍內

        第一次進入廚房時 spawn -> tutorial

        返回：
            True 如果階段改變
        """
        in_kitchen = is_within(position, KITCHEN, KITCHEN_RADIUS)
        if in_kitchen != self._state.is_in_kitchen:
            self._state.is_in_kitchen = in_kitchen
            self._notify()

        if in_kitchen:
            return self.start_tutorial()
        return False

    def start_tutorial(self) -> bool:
        if self._state.phase != ChefPhase.SPAWN:
            return False
        self._state.phase = ChefPhase.TUTORIAL
        return self._notify()

    def complete_tutorial(self, now: float = 0.0) -> bool:
        if self._state.phase != ChefPhase.TUTORIAL:
            return False
        self._state.phase = ChefPhase.WAITING_FOR_ORDER
        # 單向旗標，reset 以外永遠不會清除
        self._state.tutorial_completed = True
        # 教學期間到達的訂單
        self._start_next(now)
        return self._notify()

    # ============ 訂單 ============

    def receive_order(self, order: Union[ChefOrder, Mapping], now: float) -> bool:
        """
        收到新訂單（order-received）

        waiting_for_order 時立即開始烹飪；其他階段先排隊

        返回：
            True 如果開始烹飪
        """
        if not isinstance(order, ChefOrder):
            order = ChefOrder.from_payload(order)

        if self._state.phase == ChefPhase.COMPLETE or self._knows(order.id):
            return False

        if self._state.phase != ChefPhase.WAITING_FOR_ORDER:
            logger.info(f"Queueing order {order.id} while {self._state.phase.value}")
            self._state.pending_orders.append(order)
            self._notify()
            return False

        self._begin(order, now)
        return self._notify()

    def start_cooking(self, now: float) -> bool:
        """重新開始計時（玩家按下開始烹飪）"""
        if self._state.phase != ChefPhase.COOKING or self._state.current_order is None:
            return False
        self._cooking_start = now
        self._state.cooking_progress = 0.0
        self._state.time_remaining = self._state.current_order.estimated_time
        return self._notify()

    def update_cooking_progress(self, now: float) -> bool:
        """
        render tick 取樣烹飪進度

        返回：
            True 如果這次取樣完成烹飪（自動轉入 serving）
        """
        order = self._state.current_order
        if self._state.phase != ChefPhase.COOKING or order is None:
            return False

        progress, remaining = cooking_progress(now - self._cooking_start, order.estimated_time)
        self._state.cooking_progress = progress
        self._state.time_remaining = remaining

        if progress >= 100:
            self._complete_cooking()
            self._notify()
            return True

        self._notify()
        return False

    def _complete_cooking(self) -> None:
        order = self._state.current_order
        earned = calculate_order_score(
            self._dish_score(order.dish),
            order.estimated_time,
            self._state.time_remaining,
        )
        self._state.last_earned = earned
        self._state.score += earned
        self._state.completed_orders += 1
        self._state.phase = ChefPhase.SERVING
        logger.info(f"Order {order.id} cooked, +{earned} points")

    def serve_order(self, now: float) -> Optional[ServedOrder]:
        """
        送出料理（serving -> waiting_for_order）

        now 與 order_time 使用同一個時間基準（秒）

        返回：
            ServedOrder；不在 serving 階段時回傳 None
        """
        order = self._state.current_order
        if self._state.phase != ChefPhase.SERVING or order is None:
            return None

        completion_time_ms = (now - order.order_time) * 1000
        served = ServedOrder(
            order_id=order.id,
            completion_time_ms=completion_time_ms,
            was_on_time=completion_time_ms <= order.estimated_time * 1000,
        )

        self._clear_current()
        self._start_next(now)
        self._notify()
        return served

    def order_cancelled(self, order_id: str, now: float) -> bool:
        """server 取消訂單（order-cancelled）：丟掉目前或排隊中的那一筆"""
        order = self._state.current_order
        if order is not None and order.id == order_id:
            self._clear_current()
            self._start_next(now)
            return self._notify()

        before = len(self._state.pending_orders)
        self._state.pending_orders = [o for o in self._state.pending_orders if o.id != order_id]
        if len(self._state.pending_orders) != before:
            return self._notify()
        return False

    def end_session(self) -> bool:
        if self._state.phase == ChefPhase.COMPLETE:
            return False
        self._state.phase = ChefPhase.COMPLETE
        return self._notify()

    def reset(self) -> None:
        self._state = ChefState()
        self._cooking_start = 0.0
        self._notify()

    # ============ 工具 ============

    def _begin(self, order: ChefOrder, now: float) -> None:
        self._state.current_order = order
        self._state.phase = ChefPhase.COOKING
        self._state.cooking_progress = 0.0
        self._state.time_remaining = order.estimated_time
        self._cooking_start = now

    def _clear_current(self) -> None:
        self._state.current_order = None
        self._state.cooking_progress = 0.0
        self._state.time_remaining = 0.0
        if self._state.phase in (ChefPhase.COOKING, ChefPhase.SERVING):
            self._state.phase = ChefPhase.WAITING_FOR_ORDER

    def _start_next(self, now: float) -> None:
        if self._state.phase == ChefPhase.WAITING_FOR_ORDER and self._state.pending_orders:
            self._begin(self._state.pending_orders.pop(0), now)

    def _knows(self, order_id: str) -> bool:
        current = self._state.current_order
        if current is not None and current.id == order_id:
            return True
        return any(o.id == order_id for o in self._state.pending_orders)

    def _notify(self) -> bool:
        if self._on_state_change:
            self._on_state_change(self.state)
        return True
