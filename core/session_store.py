"""
Session Store：管理 Room 的完整生命週期（記憶體內）

職責：
1. 建立或取得 Room（含全新的桌子、庫存、訂單 ledger）
2. 加入玩家（容量 2 人、角色不可重複）
3. 移除玩家（最後一位離開時立即刪除 Room，沒有重連寬限期）
4. 查詢 Room / Player

原則：
- 所有變更都以 room_id 為 key，房間之間不共享任何狀態
- Store 由 main.py 明確建立並注入 handler，不是 module 層級的全域變數
"""
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging

from core.exceptions import RoomFull, RoleTaken, RoomNotFound
from core.menu_inventory import MenuInventory
from core.order_ledger import OrderLedger
from core.table_allocator import TableAllocator, TABLE_LAYOUT

logger = logging.getLogger(__name__)

MAX_PLAYERS_PER_ROOM = 2
REQUEST_CACHE_SIZE = 32


class PlayerRole(str, Enum):
    VISITOR = "visitor"
    CHEF = "chef"


SPAWN_POSITIONS = {
    PlayerRole.CHEF: {"x": 0.0, "y": 1.6, "z": -8.0},
    PlayerRole.VISITOR: {"x": -8.0, "y": 1.6, "z": 10.0},
}


@dataclass
class PlayerRecord:
    id: str  # connection id
    role: PlayerRole
    username: str
    position: Dict[str, float]
    rotation: Dict[str, float] = field(default_factory=lambda: {"x": 0.0, "y": 0.0})

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "username": self.username,
            "position": dict(self.position),
            "rotation": dict(self.rotation),
        }


@dataclass
class RoomStats:
    refunds: float = 0.0
    chef_penalty: int = 0
    free_dishes: int = 0
    cancelled_orders: int = 0

    def to_payload(self) -> dict:
        return {
            "refunds": self.refunds,
            "chefPenalty": self.chef_penalty,
            "freeDishes": self.free_dishes,
            "cancelledOrders": self.cancelled_orders,
        }


@dataclass
class RoomRecord:
    id: str
    created_at: float
    tables: TableAllocator
    inventory: MenuInventory
    orders: OrderLedger
    players: Dict[str, PlayerRecord] = field(default_factory=dict)
    ratings: List[int] = field(default_factory=list)
    stats: RoomStats = field(default_factory=RoomStats)
    events: List[dict] = field(default_factory=list)
    # request_id -> 當時的回覆，重送時直接重播
    responses: "OrderedDict[str, tuple]" = field(default_factory=OrderedDict)

    def record_event(self, event_type: str, data: Optional[dict] = None, at: Optional[float] = None):
        self.events.append({"event_type": event_type, "data": data or {}, "at": at})

    def remember_response(self, request_id: str, response: tuple) -> None:
        self.responses[request_id] = response
        while len(self.responses) > REQUEST_CACHE_SIZE:
            self.responses.popitem(last=False)


class SessionStore:
    """房間生命週期管理器"""

    def __init__(self, clock: Callable[[], float] = time.time, table_layout=TABLE_LAYOUT):
        self._clock = clock
        self._table_layout = table_layout
        self._rooms: Dict[str, RoomRecord] = {}

    def create_or_get_room(self, room_id: str) -> RoomRecord:
        """
        取得房間，不存在就建立

        新房間包含：
        - 空的玩家 map
        - 全新的 6 張桌子（都未佔用）
        - 全新的菜單庫存與訂單 ledger
        """
        room = self._rooms.get(room_id)
        if room is not None:
            return room

        tables = TableAllocator(self._table_layout, clock=self._clock)
        inventory = MenuInventory()
        room = RoomRecord(
            id=room_id,
            created_at=self._clock(),
            tables=tables,
            inventory=inventory,
            orders=OrderLedger(tables, inventory, clock=self._clock),
        )
        room.record_event("ROOM_CREATED", {"room_id": room_id}, at=room.created_at)
        self._rooms[room_id] = room

        logger.info(f"Created room {room_id}")
        return room

    def add_player(
        self,
        room: RoomRecord,
        role: PlayerRole,
        conn_id: str,
        username: str = "Player",
    ) -> PlayerRecord:
        """
        加入玩家

        異常：
            RoomFull: 房間已有 2 位玩家
            RoleTaken: 該角色已有玩家
        """
        role = PlayerRole(role)
        if len(room.players) >= MAX_PLAYERS_PER_ROOM:
            raise RoomFull(room.id)

        if any(player.role == role for player in room.players.values()):
            raise RoleTaken(room.id, role.value)

        player = PlayerRecord(
            id=conn_id,
            role=role,
            username=username,
            position=dict(SPAWN_POSITIONS[role]),
        )
        room.players[conn_id] = player
        room.record_event(
            "PLAYER_JOINED",
            {"player_id": conn_id, "role": role.value, "username": username},
            at=self._clock(),
        )

        logger.info(f"Player {conn_id} ({username}) joined room {room.id} as {role.value}")
        return player

    def remove_player(self, room: RoomRecord, conn_id: str) -> Optional[PlayerRecord]:
        """移除玩家；房間變空時立即刪除"""
        player = room.players.pop(conn_id, None)
        if player is None:
            return None

        room.record_event("PLAYER_LEFT", {"player_id": conn_id}, at=self._clock())
        logger.info(f"Player {conn_id} left room {room.id}")

        if not room.players:
            self.delete_room(room.id)
        return player

    def delete_room(self, room_id: str) -> bool:
        if self._rooms.pop(room_id, None) is None:
            return False
        logger.info(f"Room deleted: {room_id}")
        return True

    def get_room(self, room_id: str) -> RoomRecord:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        return room

    def find_room(self, room_id: str) -> Optional[RoomRecord]:
        return self._rooms.get(room_id)

    def rooms(self) -> List[RoomRecord]:
        return list(self._rooms.values())

    def rooms_for_connection(self, conn_id: str) -> List[RoomRecord]:
        return [room for room in self._rooms.values() if conn_id in room.players]

    @staticmethod
    def player_by_role(room: RoomRecord, role: PlayerRole) -> Optional[PlayerRecord]:
        for player in room.players.values():
            if player.role == role:
                return player
        return None

    @staticmethod
    def snapshot(room: RoomRecord) -> dict:
        return {
            "roomId": room.id,
            "createdAt": room.created_at,
            "players": [player.to_payload() for player in room.players.values()],
            "tables": [table.to_payload() for table in room.tables.tables()],
            "orders": [order.to_payload() for order in room.orders.active_orders()],
            "menu": room.inventory.items(),
        }

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
