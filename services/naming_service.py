"""
命名服務：生成 Room Code 和 Order ID

純計算邏輯，不涉及狀態轉換
"""
import random
import string


def generate_room_code() -> str:
    """
    生成隨機的 6 位大寫字母房間代碼

    範例：ABCDEF, XYZABC

    不檢查唯一性：POST /api/rooms 會避開目前存在的房間
    """
    return ''.join(random.choices(string.ascii_uppercase, k=6))


def generate_order_id(timestamp: float) -> str:
    """
    生成訂單 ID：order_<毫秒時間戳>_<9 位隨機字元>

    同一毫秒內的兩筆訂單靠隨機後綴區分（36^9 種可能）

    參數：
        timestamp: 秒為單位的時間戳（通常是 clock()）

    範例：
        generate_order_id(1700000000.123) -> "order_1700000000123_k3j9x0a1b"
    """
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"order_{int(timestamp * 1000)}_{suffix}"
