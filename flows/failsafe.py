"""
Client failsafe：請求重送與延遲監測

協定本身沒有回應逾時，所以 client 自己看守 book-table / place-order：
- 每個請求都帶 requestId，逾時就用同一個 id 重送
  （server 會重播當時的回覆，不會重複扣庫存或訂位）
- 超過重送次數就放棄，交給 UI 提示玩家

來回延遲過高時切換成本地預測模式
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging
import uuid

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 8.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_LATENCY_CEILING_MS = 400
DEFAULT_RECOVERY_SAMPLES = 3


@dataclass
class PendingRequest:
    request_id: str
    kind: str
    message: dict
    sent_at: float
    attempts: int = 1


class RequestWatchdog:
    """追蹤尚未收到回覆的請求，決定何時重送或放棄"""

    def __init__(self, timeout: float = DEFAULT_REQUEST_TIMEOUT, max_retries: int = DEFAULT_MAX_RETRIES):
        self.timeout = timeout
        self.max_retries = max_retries
        self._pending: Dict[str, PendingRequest] = {}

    def track(self, message: dict, now: float, request_id: Optional[str] = None) -> dict:
        """登記送出的訊息；回傳附上 requestId 的版本（重送時使用）"""
        request_id = request_id or message.get("requestId") or uuid.uuid4().hex
        tagged = dict(message, requestId=request_id)
        self._pending[request_id] = PendingRequest(
            request_id=request_id,
            kind=message.get("type", "unknown"),
            message=tagged,
            sent_at=now,
        )
        return tagged

    def acknowledge(self, request_id: Optional[str]) -> bool:
        if not request_id:
            return False
        return self._pending.pop(request_id, None) is not None

    def poll(self, now: float) -> Tuple[List[dict], List[PendingRequest]]:
        """
        檢查所有等待中的請求是否逾時

        返回：
            (resend, failed)
            resend: 需要重送的訊息
            failed: 已用完 max_retries 的請求（不再追蹤）
        """
        resend: List[dict] = []
        failed: List[PendingRequest] = []
        for request_id, pending in list(self._pending.items()):
            if now - pending.sent_at < self.timeout:
                continue
            if pending.attempts > self.max_retries:
                logger.warning(f"Request {request_id} ({pending.kind}) failed after {pending.attempts} attempts")
                failed.append(self._pending.pop(request_id))
                continue
            pending.attempts += 1
            pending.sent_at = now
            resend.append(pending.message)
        return resend, failed

    @property
    def pending(self) -> List[PendingRequest]:
        return list(self._pending.values())


class LatencyMonitor:
    """延遲超過上限時開啟本地預測，連續 N 次正常後關閉"""

    def __init__(
        self,
        ceiling_ms: float = DEFAULT_LATENCY_CEILING_MS,
        recovery_samples: int = DEFAULT_RECOVERY_SAMPLES,
    ):
        self.ceiling_ms = ceiling_ms
        self.recovery_samples = recovery_samples
        self.local_prediction = False
        self.last_latency_ms: Optional[float] = None
        self._healthy_streak = 0

    def record(self, latency_ms: float) -> bool:
        """記錄一次來回延遲（毫秒）；回傳目前是否為預測模式"""
        self.last_latency_ms = latency_ms
        if latency_ms > self.ceiling_ms:
            if not self.local_prediction:
                logger.warning(f"High latency ({latency_ms:.0f}ms), enabling local prediction")
            self.local_prediction = True
            self._healthy_streak = 0
            return True

        if self.local_prediction:
            self._healthy_streak += 1
            if self._healthy_streak >= self.recovery_samples:
                logger.info("Latency recovered, disabling local prediction")
                self.local_prediction = False
                self._healthy_streak = 0
        return self.local_prediction

    def record_pong(self, sent_at: float, received_at: float) -> bool:
        """從 pong 事件計算延遲：兩個時間都是秒"""
        return self.record((received_at - sent_at) * 1000)
