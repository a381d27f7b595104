"""
距離判定：玩家與場景固定點之間的平面（x, z）距離

高度（y）一律忽略
"""
import math
from typing import Dict, Mapping, Optional, Tuple

Point = Tuple[float, float]

ENTRANCE_DOOR: Point = (-2.0, 8.0)
ENTRANCE_RADIUS = 5.0

RECEPTION_DESK: Point = (-10.0, 12.0)
RECEPTION_RADIUS = 5.0

KITCHEN: Point = (0.0, -12.0)
KITCHEN_RADIUS = 6.0

TABLE_RADIUS = 3.0

NPC_POSITIONS: Dict[str, Point] = {
    "receptionist": (-8.0, 10.0),
    "waiter": (3.0, -8.0),
}
NPC_RADIUS = 3.0


def planar_distance(position: Mapping[str, float], point: Point) -> float:
    return math.hypot(position["x"] - point[0], position["z"] - point[1])


def is_within(position: Mapping[str, float], point: Point, radius: float) -> bool:
    return planar_distance(position, point) < radius


def nearest_npc(position: Mapping[str, float]) -> Optional[str]:
    """回傳 NPC_RADIUS 內的第一個 NPC，沒有則 None"""
    for npc_id, point in NPC_POSITIONS.items():
        if is_within(position, point, NPC_RADIUS):
            return npc_id
    return None
