"""
Table Allocator：每個房間固定 6 張桌子的訂位管理

規則：
- first-fit：依照桌子清單順序，找到第一張「未佔用且容量足夠」的桌子
  （不做 best-fit，不嘗試減少浪費的座位）
- 一張桌子同時只能被一方保留
- 桌子隨房間建立，房間存在期間不會被刪除
"""
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
import logging

from core.exceptions import TableNotFound

logger = logging.getLogger(__name__)

# (id, x, z, capacity)
TABLE_LAYOUT: List[Tuple[int, float, float, int]] = [
    (1, -6, -6, 4),
    (2, 6, -6, 4),
    (3, -6, -1, 2),
    (4, 6, -1, 2),
    (5, -6, 4, 6),
    (6, 6, 4, 6),
]


@dataclass
class TableRecord:
    id: int
    x: float
    z: float
    capacity: int
    is_occupied: bool = False
    reserved_by: Optional[str] = None
    reserved_at: Optional[float] = None
    current_order: Optional[str] = None

    @property
    def position(self) -> Dict[str, float]:
        return {"x": self.x, "z": self.z}

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "x": self.x,
            "z": self.z,
            "capacity": self.capacity,
            "isOccupied": self.is_occupied,
            "reservedBy": self.reserved_by,
            "reservedAt": self.reserved_at,
            "currentOrder": self.current_order,
        }


class TableAllocator:
    """單一房間的桌子庫存"""

    def __init__(self, layout=TABLE_LAYOUT, clock: Callable[[], float] = time.time):
        self._clock = clock
        # dict 保留插入順序，即 first-fit 的掃描順序
        self._tables: Dict[int, TableRecord] = {
            table_id: TableRecord(id=table_id, x=x, z=z, capacity=capacity)
            for table_id, x, z, capacity in layout
        }

    def tables(self) -> List[TableRecord]:
        return list(self._tables.values())

    def get(self, table_id: int) -> Optional[TableRecord]:
        return self._tables.get(table_id)

    def require(self, table_id: int) -> TableRecord:
        table = self._tables.get(table_id)
        if table is None:
            raise TableNotFound(table_id)
        return table

    def find_available(self, size: int) -> Optional[TableRecord]:
        """
        找第一張可用的桌子

        參數：
            size: 用餐人數

        返回：
            第一張 !is_occupied 且 capacity >= size 的桌子，沒有則 None

        範例：
            只剩 4 人桌（id=1）與 6 人桌（id=5）時，find_available(2) 回傳 4 人桌
        """
        for table in self._tables.values():
            if not table.is_occupied and table.capacity >= size:
                return table
        return None

    def reserve(self, table_id: int, who: str) -> bool:
        """
        保留桌子

        只有在桌子目前未佔用時成功；失敗時回傳 False（不拋異常），
        由呼叫者負責通知請求者「沒有空桌」
        """
        table = self._tables.get(table_id)
        if table is None or table.is_occupied:
            return False

        table.is_occupied = True
        table.reserved_by = who
        table.reserved_at = self._clock()
        logger.debug(f"Table {table_id} reserved by {who}")
        return True

    def release(self, table_id: int) -> bool:
        """釋放桌子；對已空的桌子呼叫是冪等的（回傳 False）"""
        table = self._tables.get(table_id)
        if table is None or not table.is_occupied:
            return False

        table.is_occupied = False
        table.reserved_by = None
        table.reserved_at = None
        table.current_order = None
        logger.debug(f"Table {table_id} released")
        return True

    def reserved_by(self, who: str) -> Optional[TableRecord]:
        for table in self._tables.values():
            if table.is_occupied and table.reserved_by == who:
                return table
        return None

    def link_order(self, table_id: int, order_id: Optional[str]) -> None:
        table = self._tables.get(table_id)
        if table is not None:
            table.current_order = order_id
