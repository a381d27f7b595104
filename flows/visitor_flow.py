"""
Visitor Phase Machine：訪客端的流程狀態機（client-local mirror）

流程：
entrance -> reception -> booking -> waiter_approaching -> walking_to_table
-> at_table -> seated -> menu_requested -> ordering -> waiting -> served
-> rating -> complete

原則：
- 每個轉換方法只在「來源階段正確」時生效，否則什麼都不做並回傳 False
  （重複或遲到的網路事件不會破壞狀態）
- 需要延遲的轉換（服務生走過來、送菜單）不使用 timer，
  由 tick(now) 依照注入的時間觸發
- 桌子清單是 server 狀態的唯讀投影，每次都整份覆寫（apply_tables）
"""
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional
import logging

from core.table_allocator import TABLE_LAYOUT
from flows.proximity import (
    ENTRANCE_DOOR,
    ENTRANCE_RADIUS,
    RECEPTION_DESK,
    RECEPTION_RADIUS,
    TABLE_RADIUS,
    Point,
    is_within,
    nearest_npc,
)

logger = logging.getLogger(__name__)

WAITER_DISPATCH_DELAY = 1.0
MENU_DELIVERY_DELAY = 1.5


class VisitorPhase(str, Enum):
    ENTRANCE = "entrance"
    RECEPTION = "reception"
    BOOKING = "booking"
    WAITER_APPROACHING = "waiter_approaching"
    WALKING_TO_TABLE = "walking_to_table"
    AT_TABLE = "at_table"
    SEATED = "seated"
    MENU_REQUESTED = "menu_requested"
    ORDERING = "ordering"
    WAITING = "waiting"
    SERVED = "served"
    RATING = "rating"
    COMPLETE = "complete"


@dataclass
class VisitorOrder:
    dish: str
    price: float
    order_time: float
    order_id: Optional[str] = None
    estimated_time: Optional[int] = None
    status: str = "pending"


@dataclass
class VisitorState:
    phase: VisitorPhase = VisitorPhase.ENTRANCE
    current_table: Optional[int] = None
    selected_table_size: Optional[int] = None
    current_order: Optional[VisitorOrder] = None
    rating: Optional[int] = None
    is_at_reception: bool = False
    is_seated: bool = False
    waiter_approached: bool = False
    menu_requested: bool = False
    last_message: Optional[str] = None
    orders_history: List[str] = field(default_factory=list)


class VisitorPhaseMachine:

    def __init__(
        self,
        on_state_change: Optional[Callable[[VisitorState], None]] = None,
        auto_rating: bool = True,
        waiter_delay: float = WAITER_DISPATCH_DELAY,
        menu_delay: float = MENU_DELIVERY_DELAY,
    ):
        self._on_state_change = on_state_change
        self._auto_rating = auto_rating
        self._waiter_delay = waiter_delay
        self._menu_delay = menu_delay
        self._state = VisitorState()
        self._tables: Dict[int, dict] = {
            table_id: {"id": table_id, "x": x, "z": z, "capacity": capacity,
                       "isOccupied": False, "reservedBy": None}
            for table_id, x, z, capacity in TABLE_LAYOUT
        }
        self._table_point: Optional[Point] = None
        self._waiter_due: Optional[float] = None
        self._menu_due: Optional[float] = None

    @property
    def state(self) -> VisitorState:
        return copy.deepcopy(self._state)

    @property
    def phase(self) -> VisitorPhase:
        return self._state.phase

    def tables(self) -> Dict[int, dict]:
        return copy.deepcopy(self._tables)

    def apply_tables(self, tables: List[Mapping]) -> None:
        """用 server 的桌子快照整份覆寫本地副本（不做欄位合併）"""
        self._tables = {int(table["id"]): dict(table) for table in tables}

    # ============ 感測 ============

    def update_position(self, position: Mapping[str, float], now: float = 0.0) -> bool:
        """
        依照玩家位置觸發 proximity 轉換

        - entrance: 跨過門口 -> reception
        - walking_to_table: 進入指定桌子半徑 -> at_table
        - seated: 走到服務生旁邊 -> menu_requested（與 request_menu() 相同）
        """
        if self._state.phase == VisitorPhase.ENTRANCE and is_within(position, ENTRANCE_DOOR, ENTRANCE_RADIUS):
            return self.enter_reception()

        if (self._state.phase == VisitorPhase.WALKING_TO_TABLE
                and self._table_point is not None
                and is_within(position, self._table_point, TABLE_RADIUS)):
            return self.reached_table()

        if self._state.phase == VisitorPhase.SEATED and nearest_npc(position) == "waiter":
            return self.request_menu(now)

        return False

    def at_reception_desk(self, position: Mapping[str, float]) -> bool:
        """在 reception 階段且靠近櫃台時，UI 應顯示訂位選單"""
        return self._state.phase == VisitorPhase.RECEPTION and is_within(position, RECEPTION_DESK, RECEPTION_RADIUS)

    @staticmethod
    def nearby_npc(position: Mapping[str, float]) -> Optional[str]:
        return nearest_npc(position)

    def tick(self, now: float) -> bool:
        """render tick：觸發到期的延遲轉換"""
        moved = False
        if self._waiter_due is not None and now >= self._waiter_due:
            moved = self.waiter_approached() or moved
        if self._menu_due is not None and now >= self._menu_due:
            moved = self.menu_shown() or moved
        return moved

    # ============ 階段轉換 ============

    def enter_reception(self) -> bool:
        if not self._advance(VisitorPhase.ENTRANCE, VisitorPhase.RECEPTION):
            return False
        self._state.is_at_reception = True
        return self._notify()

    def start_booking(self, table_size: int) -> bool:
        if table_size < 1:
            logger.warning(f"Ignoring booking for invalid party size {table_size}")
            return False
        if not self._advance(VisitorPhase.RECEPTION, VisitorPhase.BOOKING):
            return False
        self._state.selected_table_size = table_size
        self._state.last_message = None
        return self._notify()

    def table_assigned(
        self,
        table_id: int,
        position: Optional[Mapping[str, float]] = None,
        now: float = 0.0,
    ) -> bool:
        """server 確認訂位成功（table-assigned）"""
        if not self._advance(VisitorPhase.BOOKING, VisitorPhase.WAITER_APPROACHING):
            return False

        table = self._tables.get(table_id)
        if position is not None:
            self._table_point = (position["x"], position["z"])
        elif table is not None:
            self._table_point = (table["x"], table["z"])
        if table is not None:
            table["isOccupied"] = True
            table["reservedBy"] = "visitor"

        self._state.current_table = table_id
        self._state.waiter_approached = True
        self._waiter_due = now + self._waiter_delay
        return self._notify()

    def table_unavailable(self, message: str) -> bool:
        """沒有空桌：回到 reception，讓玩家換人數或稍後再試"""
        if not self._advance(VisitorPhase.BOOKING, VisitorPhase.RECEPTION):
            return False
        self._state.selected_table_size = None
        self._state.last_message = message
        return self._notify()

    def waiter_approached(self) -> bool:
        if not self._advance(VisitorPhase.WAITER_APPROACHING, VisitorPhase.WALKING_TO_TABLE):
            return False
        self._waiter_due = None
        return self._notify()

    def reached_table(self) -> bool:
        if not self._advance(VisitorPhase.WALKING_TO_TABLE, VisitorPhase.AT_TABLE):
            return False
        return self._notify()

    def sit_down(self) -> bool:
        if not self._advance(VisitorPhase.AT_TABLE, VisitorPhase.SEATED):
            return False
        self._state.is_seated = True
        return self._notify()

    def request_menu(self, now: float = 0.0) -> bool:
        if not self._advance(VisitorPhase.SEATED, VisitorPhase.MENU_REQUESTED):
            return False
        self._state.menu_requested = True
        self._menu_due = now + self._menu_delay
        return self._notify()

    def menu_shown(self) -> bool:
        if not self._advance(VisitorPhase.MENU_REQUESTED, VisitorPhase.ORDERING):
            return False
        self._menu_due = None
        return self._notify()

    def place_order(self, items: List[Mapping], now: float = 0.0) -> bool:
        """
        送出訂單（ordering -> waiting）

        items: [{"name": ..., "quantity": ..., "price": ...}]，price 是小計
        需要至少一項，且已經有指定的桌子
        """
        if self._state.phase != VisitorPhase.ORDERING:
            return False
        if not items or self._state.current_table is None:
            logger.warning("Ignoring order without items or table")
            return False

        self._state.phase = VisitorPhase.WAITING
        self._state.current_order = VisitorOrder(
            dish=", ".join(f"{item['quantity']}x {item['name']}" for item in items),
            price=sum(item["price"] for item in items),
            order_time=now,
        )
        return self._notify()

    def order_placed(self, order_id: str, estimated_time: Optional[int] = None) -> bool:
        """server 確認訂單建立（order-placed），記下 order id"""
        order = self._state.current_order
        if self._state.phase != VisitorPhase.WAITING or order is None or order.order_id is not None:
            return False
        order.order_id = order_id
        order.estimated_time = estimated_time
        self._state.orders_history.append(order_id)
        return self._notify()

    def order_status_changed(self, order_id: str, status: str) -> bool:
        """
        server 通知訂單狀態改變（order-status-changed）

        只在 waiting 階段接受（served 之後遲到的事件不會改回舊狀態）；
        只有目前這筆訂單變成 served 時才會推進階段；
        auto_rating 開啟時 served 之後立刻進入 rating
        """
        order = self._state.current_order
        if self._state.phase != VisitorPhase.WAITING or order is None or order.order_id != order_id:
            return False

        order.status = status
        if status != "served" or not self._advance(VisitorPhase.WAITING, VisitorPhase.SERVED):
            self._notify()
            return False

        if self._auto_rating:
            self._state.phase = VisitorPhase.RATING
        return self._notify()

    def order_ready(self, order_id: str) -> bool:
        order = self._state.current_order
        if self._state.phase != VisitorPhase.WAITING or order is None or order.order_id != order_id:
            return False
        order.status = "ready"
        return self._notify()

    def order_cancelled(self, order_id: str, message: str = "Your order was cancelled") -> bool:
        """訂單被取消（斷線或逾時補償）：回到 ordering 重新點餐"""
        order = self._state.current_order
        if order is None or order.order_id != order_id:
            return False
        if not self._advance(VisitorPhase.WAITING, VisitorPhase.ORDERING):
            return False
        self._state.current_order = None
        self._state.last_message = message
        return self._notify()

    def show_rating(self) -> bool:
        if not self._advance(VisitorPhase.SERVED, VisitorPhase.RATING):
            return False
        return self._notify()

    def submit_rating(self, rating: int) -> bool:
        if not isinstance(rating, int) or not 1 <= rating <= 5:
            logger.warning(f"Ignoring out-of-range rating {rating!r}")
            return False
        if not self._advance(VisitorPhase.RATING, VisitorPhase.COMPLETE):
            return False
        self._state.rating = rating
        return self._notify()

    def reset(self) -> None:
        self._state = VisitorState()
        for table in self._tables.values():
            table["isOccupied"] = False
            table["reservedBy"] = None
        self._table_point = None
        self._waiter_due = None
        self._menu_due = None
        self._notify()

    # ============ 工具 ============

    def _advance(self, source: VisitorPhase, target: VisitorPhase) -> bool:
        if self._state.phase != source:
            logger.debug(f"Ignoring {source.value} -> {target.value} while in {self._state.phase.value}")
            return False
        self._state.phase = target
        return True

    def _notify(self) -> bool:
        if self._on_state_change:
            self._on_state_change(self.state)
        return True
