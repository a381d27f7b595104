"""
統計服務：session 結束時的整場統計

session-ended 事件送出的內容，也是 SessionArchive 寫入資料庫的內容
"""
from typing import Any, Dict

from core.session_store import RoomRecord


def build_session_stats(room: RoomRecord, completed_at: float) -> Dict[str, Any]:
    """
    把房間彙整成 session 結束時的統計

    注意：
        orders 只包含結束時仍在進行中的訂單；
        served / cancelled 的訂單已離開 ledger，它們的數量與金額記在 stats
    """
    ratings = list(room.ratings)
    return {
        "roomId": room.id,
        "players": [player.to_payload() for player in room.players.values()],
        "orders": [order.to_payload() for order in room.orders.active_orders()],
        "ratings": ratings,
        "stats": {
            "servedOrders": room.orders.served_count,
            "revenue": room.orders.served_revenue,
            "averageRating": (sum(ratings) / len(ratings)) if ratings else None,
            **room.stats.to_payload(),
        },
        "createdAt": room.created_at,
        "completedAt": completed_at,
    }
