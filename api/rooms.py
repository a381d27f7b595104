"""
Room API Endpoints

職責：
1. 產生新的房間代碼（房間本身在第一次 join-room 時建立）
2. 查詢房間快照 / 單一桌子
3. 查詢菜單與 failsafe 參數
4. 查詢已封存的 session
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
import logging

from database import get_db, get_settings
from schemas import RoomCodeResponse, SessionRecordOut
from core.exceptions import RoomNotFound, TableNotFound
from core.session_archive import SessionArchive
from core.session_store import SessionStore
from services.menu_catalog import MENU
from services.naming_service import generate_room_code

router = APIRouter(prefix="/api", tags=["rooms"])
logger = logging.getLogger(__name__)


def get_store(request: Request) -> SessionStore:
    return request.app.state.relay_handler.store


@router.post("/rooms", response_model=RoomCodeResponse)
def create_room_code(store: SessionStore = Depends(get_store)):
    """
    產生一個目前沒有被使用的房間代碼

    不會建立房間；第一位玩家 join-room 時才會建立
    """
    room_id = generate_room_code()
    while room_id in store:
        room_id = generate_room_code()
    logger.info(f"Issued room code {room_id}")
    return RoomCodeResponse(room_id=room_id)


@router.get("/rooms/{room_id}")
def get_room(room_id: str, store: SessionStore = Depends(get_store)):
    try:
        return store.snapshot(store.get_room(room_id))
    except RoomNotFound:
        raise HTTPException(status_code=404, detail="Room not found")


@router.get("/rooms/{room_id}/tables/{table_id}")
def get_table(room_id: str, table_id: int, store: SessionStore = Depends(get_store)):
    try:
        room = store.get_room(room_id)
        return room.tables.require(table_id).to_payload()
    except RoomNotFound:
        raise HTTPException(status_code=404, detail="Room not found")
    except TableNotFound:
        raise HTTPException(status_code=404, detail="Table not found")


@router.get("/menu")
def get_menu():
    """菜單（初始庫存）與 client failsafe 參數"""
    settings = get_settings()
    return {
        "items": [item.to_payload() for item in MENU],
        "failsafe": {
            "requestTimeout": settings.request_timeout,
            "requestMaxRetries": settings.request_max_retries,
            "latencyCeilingMs": settings.latency_ceiling_ms,
        },
    }


@router.get("/sessions", response_model=List[SessionRecordOut])
def list_sessions(limit: int = Query(50, ge=1, le=200), db: Session = Depends(get_db)):
    try:
        return SessionArchive.list_sessions(db, limit=limit)
    except Exception as e:
        logger.error(f"Failed to list sessions: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
