"""
烹飪進度：純函式，只依賴 (elapsed, duration)

render tick 每次重新計算，不保存任何狀態，
測試時直接傳入時間即可，不需要真正的計時器
"""
import math
from typing import Tuple


def cooking_progress(elapsed: float, duration: float) -> Tuple[float, float]:
    """
    計算烹飪進度

    參數：
        elapsed: 已經過秒數
        duration: 預估總秒數

    返回：
        (progress, time_remaining)
        progress = min(elapsed / duration * 100, 100)
        time_remaining = max(duration - elapsed, 0)

    範例：
        cooking_progress(5, 10) -> (50.0, 5.0)
        cooking_progress(12, 10) -> (100.0, 0.0)
    """
    elapsed = max(elapsed, 0.0)
    if duration <= 0:
        return 100.0, 0.0
    progress = min(elapsed / duration * 100, 100.0)
    return progress, max(duration - elapsed, 0.0)


def calculate_order_score(base_score: int, estimated_time: float, time_remaining: float) -> int:
    """
    完成一筆訂單獲得的分數

    earned = base + floor(time_bonus * 10)
    time_bonus = max(0, estimated_time - time_remaining)

    範例：
        calculate_order_score(80, 10, 10) -> 80
        calculate_order_score(150, 10, 0) -> 250
    """
    time_bonus = max(0.0, estimated_time - time_remaining)
    return base_score + math.floor(time_bonus * 10)
