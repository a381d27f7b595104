"""
WebSocket relay endpoint

職責：
1. 為每條連線配發 connection id
2. 把收到的 JSON frame 交給 RelayProtocolHandler
3. 把 handler 回傳的 Delivery 送給對應的連線

送出格式：{"type": <event>, ...payload}
"""
import json
import uuid
from typing import Dict, Iterable, Optional
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from core.exceptions import InvalidMessage
from core.relay_handler import Delivery, RelayProtocolHandler

router = APIRouter(tags=["relay"])
logger = logging.getLogger(__name__)


class ConnectionManager:
    """connection id -> WebSocket"""

    def __init__(self):
        self._connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        conn_id = uuid.uuid4().hex
        self._connections[conn_id] = websocket
        logger.info(f"Connection opened: {conn_id}")
        return conn_id

    def disconnect(self, conn_id: str) -> None:
        if self._connections.pop(conn_id, None) is not None:
            logger.info(f"Connection closed: {conn_id}")

    def get(self, conn_id: str) -> Optional[WebSocket]:
        return self._connections.get(conn_id)

    def __len__(self) -> int:
        return len(self._connections)

    async def deliver(self, deliveries: Iterable[Delivery]) -> None:
        """
        送出事件（fire-and-forget）

        單一連線送出失敗只記 log，不影響其他收件者
        """
        for delivery in deliveries:
            frame = encode_frame(delivery.event, delivery.payload)
            for conn_id in delivery.targets:
                websocket = self._connections.get(conn_id)
                if websocket is None:
                    continue
                try:
                    await websocket.send_json(frame)
                except Exception as e:
                    logger.warning(f"Failed to send {delivery.event} to {conn_id}: {e}")


def encode_frame(event: str, payload) -> dict:
    if isinstance(payload, dict):
        return {"type": event, **payload}
    return {"type": event, "data": payload}


def decode_frame(text: str) -> dict:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidMessage(f"Frame is not valid JSON: {e}")
    if not isinstance(raw, dict):
        raise InvalidMessage("Frame must be a JSON object")
    return raw


@router.websocket("/ws")
async def relay(websocket: WebSocket):
    """
    即時 relay

    handler.handle() 是同步的，在 event loop 上一次處理一則訊息，
    所以同一房間的狀態變更不會交錯；
    end-session 產生的封存工作在 threadpool 執行，不阻塞 event loop

    只有真正的斷線才會呼叫 handler.disconnect()；
    二進位 frame、非 JSON、handler 內部錯誤都只記 log 後丟棄
    """
    handler: RelayProtocolHandler = websocket.app.state.relay_handler
    manager: ConnectionManager = websocket.app.state.connections

    conn_id = await manager.connect(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            text = message.get("text")
            if text is None:
                logger.warning(f"Dropping non-text frame from {conn_id}")
                continue

            try:
                raw = decode_frame(text)
            except InvalidMessage as e:
                logger.warning(f"Dropping frame from {conn_id}: {e}")
                continue

            try:
                deliveries = handler.handle(conn_id, raw)
            except Exception as e:
                logger.error(f"Failed to handle frame from {conn_id}: {e}", exc_info=True)
                continue

            await run_in_threadpool(handler.flush_archives)
            await manager.deliver(deliveries)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(conn_id)
        await manager.deliver(handler.disconnect(conn_id))
