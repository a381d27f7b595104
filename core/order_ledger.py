"""
Order Ledger：單一房間的訂單紀錄

職責：
1. 建立訂單（總價、預估時間、綁定桌子）
2. 更新訂單狀態（本層不做狀態機檢查，由 relay handler 負責）
3. served / cancelled 的訂單從 ledger 移除，避免記憶體無限成長
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging

from core.menu_inventory import MenuInventory
from core.table_allocator import TableAllocator
from services.menu_catalog import get_cooking_time
from services.naming_service import generate_order_id

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    COOKING = "cooking"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"


@dataclass
class OrderLine:
    name: str
    quantity: int
    price: float  # 已乘上數量的小計

    def to_payload(self) -> dict:
        return {"name": self.name, "quantity": self.quantity, "price": self.price}


@dataclass
class OrderRecord:
    id: str
    table_id: int
    items: List[OrderLine]
    total_price: float
    status: OrderStatus
    order_time: float
    estimated_time: int
    assigned_chef: Optional[str] = None
    cooking_started_at: Optional[float] = None
    history: List[str] = field(default_factory=list)

    @property
    def dish(self) -> str:
        """給 chef 看的菜名，例如 "2x Burger, 1x Cold Coffee"；單一菜色單份時就是菜名本身"""
        if len(self.items) == 1 and self.items[0].quantity == 1:
            return self.items[0].name
        return ", ".join(f"{line.quantity}x {line.name}" for line in self.items)

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "tableId": self.table_id,
            "dish": self.dish,
            "items": [line.to_payload() for line in self.items],
            "totalPrice": self.total_price,
            "status": self.status.value,
            "orderTime": self.order_time,
            "estimatedTime": self.estimated_time,
            "assignedChef": self.assigned_chef,
            "cookingStartedAt": self.cooking_started_at,
        }


class OrderLedger:

    def __init__(
        self,
        tables: TableAllocator,
        inventory: MenuInventory,
        clock: Callable[[], float] = time.time,
    ):
        self._tables = tables
        self._inventory = inventory
        self._clock = clock
        self._orders: Dict[str, OrderRecord] = {}
        self.served_count = 0
        self.served_revenue = 0.0

    def create_order(self, table_id: int, items: List[OrderLine]) -> Optional[OrderRecord]:
        """
        建立訂單

        前置條件：
            桌子必須存在且已被保留（is_occupied）

        計算：
            total_price    = 每行小計相加（小計已由前端乘好數量）
            estimated_time = 每行 cooking_time * quantity 相加

        返回：
            新的 OrderRecord（status=pending），桌子未佔用時回傳 None
        """
        table = self._tables.get(table_id)
        if table is None or not table.is_occupied:
            logger.warning(f"Rejecting order for table {table_id}: table not reserved")
            return None

        now = self._clock()
        order_id = generate_order_id(now)
        while order_id in self._orders:
            order_id = generate_order_id(now)

        order = OrderRecord(
            id=order_id,
            table_id=table_id,
            items=list(items),
            total_price=sum(line.price for line in items),
            status=OrderStatus.PENDING,
            order_time=now,
            estimated_time=sum(get_cooking_time(line.name) * line.quantity for line in items),
            history=[OrderStatus.PENDING.value],
        )
        self._orders[order_id] = order
        self._tables.link_order(table_id, order_id)

        logger.info(f"Order {order_id} created for table {table_id} ({order.dish})")
        return order

    def check_availability(self, items: List[OrderLine]) -> bool:
        return self._inventory.check_availability(items)

    def update_inventory(self, items: List[OrderLine]) -> bool:
        return self._inventory.update_inventory(items)

    def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        chef_id: Optional[str] = None,
    ) -> Optional[OrderRecord]:
        """
        直接覆寫訂單狀態（不檢查轉換是否合法）

        cooking 時記下開始烹飪的時間（逾時看門狗由此起算）

        served 時：
            - 從 ledger 移除
            - 解除桌子上的訂單連結
            - 累計 served_count / served_revenue

        返回：
            更新後的 OrderRecord；訂單不存在時回傳 None（no-op）
        """
        order = self._orders.get(order_id)
        if order is None:
            return None

        order.status = status
        order.history.append(status.value)
        if chef_id:
            order.assigned_chef = chef_id
        if status == OrderStatus.COOKING and order.cooking_started_at is None:
            order.cooking_started_at = self._clock()

        if status == OrderStatus.SERVED:
            self._remove(order)
            self.served_count += 1
            self.served_revenue += order.total_price

        return order

    def cancel(self, order_id: str) -> Optional[OrderRecord]:
        order = self._orders.get(order_id)
        if order is None:
            return None

        order.status = OrderStatus.CANCELLED
        order.history.append(OrderStatus.CANCELLED.value)
        self._remove(order)
        logger.info(f"Order {order_id} cancelled")
        return order

    def _remove(self, order: OrderRecord) -> None:
        del self._orders[order.id]
        table = self._tables.get(order.table_id)
        if table is not None and table.current_order == order.id:
            self._tables.link_order(order.table_id, None)

    def get(self, order_id: str) -> Optional[OrderRecord]:
        return self._orders.get(order_id)

    def orders_for_table(self, table_id: int) -> List[OrderRecord]:
        return [order for order in self._orders.values() if order.table_id == table_id]

    def active_orders(self) -> List[OrderRecord]:
        return list(self._orders.values())

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: str) -> bool:
        return order_id in self._orders
