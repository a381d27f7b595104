"""
補償服務：訂單被迫取消時的補償規則

純計算邏輯，不改變任何狀態（由 relay handler 套用到房間統計）

規則：
┌────────────────────┬──────────────┬──────────────┬───────────┐
│ 取消原因           │ 退款給訪客   │ 廚師扣分     │ 免費餐點  │
├────────────────────┼──────────────┼──────────────┼───────────┤
│ chef-disconnected  │ 全額         │ 50 / 單      │ 否        │
│ visitor-left       │ 0            │ 0            │ 否        │
│ cooking-timeout    │ 全額         │ 30 / 單      │ 是        │
│ requested          │ 0            │ 0            │ 否        │
└────────────────────┴──────────────┴──────────────┴───────────┘
"""
from dataclasses import dataclass
from enum import Enum


CHEF_DISCONNECT_PENALTY = 50
COOKING_TIMEOUT_PENALTY = 30


class CancelReason(str, Enum):
    CHEF_DISCONNECTED = "chef-disconnected"
    VISITOR_LEFT = "visitor-left"
    COOKING_TIMEOUT = "cooking-timeout"
    REQUESTED = "requested"


@dataclass(frozen=True)
class Compensation:
    refund: float
    chef_penalty: int
    free_dish: bool


def compensation_for(order_total: float, reason: CancelReason) -> Compensation:
    """
    計算一筆取消訂單的補償

    參數：
        order_total: 訂單總價
        reason: 取消原因

    返回：
        Compensation

    範例：
        compensation_for(30, CancelReason.COOKING_TIMEOUT)
            -> Compensation(refund=30, chef_penalty=30, free_dish=True)
    """
    if reason == CancelReason.CHEF_DISCONNECTED:
        return Compensation(refund=order_total, chef_penalty=CHEF_DISCONNECT_PENALTY, free_dish=False)
    elif reason == CancelReason.COOKING_TIMEOUT:
        return Compensation(refund=order_total, chef_penalty=COOKING_TIMEOUT_PENALTY, free_dish=True)
    else:
        return Compensation(refund=0.0, chef_penalty=0, free_dish=False)


def is_cooking_timed_out(
    started_at: float,
    estimated_time: float,
    now: float,
    factor: float,
    grace: float,
) -> bool:
    """
    檢查訂單是否超過烹飪時間上限

    上限 = estimated_time * factor + grace（秒），從開始烹飪的時間起算

    範例（factor=2, grace=5）：
        estimated 10 秒的訂單，開始烹飪 25 秒後仍未完成 -> 逾時
    """
    return now - started_at > estimated_time * factor + grace
