"""
菜單目錄：靜態的菜色資料（價格、烹飪時間、基礎分數）

純查表邏輯，不涉及狀態；每個房間的庫存由 core.menu_inventory 管理

烹飪時間單位是「遊戲分鐘」，chef 端以 1 遊戲分鐘 = 1 秒計時
"""
from dataclasses import dataclass
from typing import Dict, List, Optional


DEFAULT_COOKING_TIME = 10
DEFAULT_DISH_SCORE = 100


@dataclass(frozen=True)
class MenuItem:
    id: str
    name: str
    price: float
    available: int
    description: str
    category: str  # "food" | "beverage"
    cooking_time: int

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "available": self.available,
            "description": self.description,
            "category": self.category,
            "cookingTime": self.cooking_time,
        }


MENU: List[MenuItem] = [
    MenuItem("burger", "Burger", 15, 5, "Juicy beef patty with fresh vegetables", "food", 8),
    MenuItem("pizza", "Pizza", 18, 5, "Classic margherita with mozzarella", "food", 12),
    MenuItem("cold_coffee", "Cold Coffee", 8, 10, "Refreshing iced coffee drink", "beverage", 3),
    MenuItem("pasta", "Pasta Carbonara", 16, 8, "Pasta, eggs, bacon and cheese", "food", 8),
    MenuItem("steak", "Grilled Steak", 28, 6, "Beef with salt, pepper and butter", "food", 10),
    MenuItem("salad", "Caesar Salad", 12, 8, "Lettuce, croutons, cheese and dressing", "food", 5),
    MenuItem("soup", "Tomato Soup", 10, 8, "Tomato, cream, basil and garlic", "food", 12),
    MenuItem("gourmet_burger", "Gourmet Burger", 22, 6, "Beef, bun, lettuce, tomato and cheese", "food", 15),
    MenuItem("margherita", "Margherita Pizza", 20, 6, "Dough, tomato, cheese and basil", "food", 18),
]

# 每道菜完成時的基礎分數（沒列出的菜用 DEFAULT_DISH_SCORE）
DISH_SCORES: Dict[str, int] = {
    "Pasta Carbonara": 100,
    "Grilled Steak": 150,
    "Caesar Salad": 80,
    "Tomato Soup": 120,
    "Gourmet Burger": 200,
    "Margherita Pizza": 180,
}

_BY_NAME: Dict[str, MenuItem] = {item.name: item for item in MENU}


def find_menu_item(name: str) -> Optional[MenuItem]:
    return _BY_NAME.get(name)


def get_cooking_time(name: str) -> int:
    """
    取得菜色的烹飪時間（遊戲分鐘）

    不在目錄中的菜色回傳 DEFAULT_COOKING_TIME
    """
    item = _BY_NAME.get(name)
    return item.cooking_time if item else DEFAULT_COOKING_TIME


def get_dish_score(dish: str) -> int:
    """
    取得菜色的基礎分數

    範例：
        get_dish_score("Gourmet Burger") -> 200
        get_dish_score("2x Burger") -> 100（無法辨識，使用預設值）
    """
    return DISH_SCORES.get(dish, DEFAULT_DISH_SCORE)
