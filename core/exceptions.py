"""
自定義異常類別

集中管理所有業務邏輯異常，方便 relay handler 與 API 層統一處理
"""


class DineVerseException(Exception):
    """所有遊戲異常的基類"""
    pass


# ============ Room 相關異常 ============

class RoomNotFound(DineVerseException):
    """房間不存在"""
    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class RoomFull(DineVerseException):
    """房間已滿（最多 2 位玩家）"""
    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__(f"Room {room_id} is full")


class RoleTaken(DineVerseException):
    """同一房間內該角色已有玩家"""
    def __init__(self, room_id, role):
        self.room_id = room_id
        self.role = role
        super().__init__(f"Role {role} is already taken in room {room_id}")


# ============ Player 相關異常 ============

class PlayerNotFound(DineVerseException):
    """連線不屬於該房間"""
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class RoleNotPermitted(DineVerseException):
    """此角色不能執行該動作（例如 chef 訂位）"""
    pass


# ============ Table / Order 相關異常 ============

class TableNotFound(DineVerseException):
    """桌子不存在"""
    def __init__(self, table_id):
        self.table_id = table_id
        super().__init__(f"Table {table_id} not found")


class InvalidStatusTransition(DineVerseException):
    """非法的訂單狀態轉換（例如 served -> cooking）"""
    pass


# ============ Message 相關異常 ============

class InvalidMessage(DineVerseException):
    """無法解析或不完整的訊息"""
    pass
