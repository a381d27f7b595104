"""
Menu Inventory：每個房間各自的菜色庫存

庫存扣除是 all-or-nothing：整批訂單都檢查通過後才會扣除任何一項。
check_availability 與 update_inventory 之間沒有鎖，
依賴單執行緒的 dispatch（每則訊息處理完才處理下一則）。
"""
from collections import defaultdict
from typing import Dict, Iterable, List
import logging

from services.menu_catalog import MENU, MenuItem

logger = logging.getLogger(__name__)


def _requested_quantities(lines: Iterable) -> Dict[str, int]:
    # 同一道菜出現在多行時要合併計算
    totals: Dict[str, int] = defaultdict(int)
    for line in lines:
        totals[line.name] += line.quantity
    return totals


class MenuInventory:

    def __init__(self, catalog: List[MenuItem] = MENU):
        self._items: Dict[str, MenuItem] = {item.name: item for item in catalog}
        self._available: Dict[str, int] = {item.name: item.available for item in catalog}

    def available(self, name: str) -> int:
        return self._available.get(name, 0)

    def check_availability(self, lines) -> bool:
        """整批訂單中每一道菜都必須存在且庫存足夠"""
        for name, quantity in _requested_quantities(lines).items():
            if name not in self._available or self._available[name] < quantity:
                return False
        return True

    def update_inventory(self, lines) -> bool:
        """
        扣除庫存

        先重新檢查整批，任何一項不足就完全不扣除並回傳 False
        """
        if not self.check_availability(lines):
            return False

        for name, quantity in _requested_quantities(lines).items():
            self._available[name] -= quantity
            logger.debug(f"Inventory {name}: -{quantity} -> {self._available[name]}")
        return True

    def items(self) -> List[dict]:
        payload = []
        for name, item in self._items.items():
            entry = item.to_payload()
            entry["available"] = self._available[name]
            payload.append(entry)
        return payload
