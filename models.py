"""
Database Models

即時房間狀態只存在記憶體中（SessionStore）；
只有結束的 session 會被封存到資料庫，供之後查詢。
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Integer, Float, JSON, ForeignKey
from sqlalchemy.orm import relationship

from database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class SessionRecord(Base):
    """一場已結束的雙人 session（end-session 時寫入）"""
    __tablename__ = "session_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    room_id = Column(String(64), nullable=False, index=True)
    players = Column(JSON, nullable=False, default=list)
    orders = Column(JSON, nullable=False, default=list)
    ratings = Column(JSON, nullable=False, default=list)
    served_orders = Column(Integer, nullable=False, default=0)
    revenue = Column(Float, nullable=False, default=0.0)
    refunds = Column(Float, nullable=False, default=0.0)
    chef_penalty = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    events = relationship("EventLog", back_populates="session", cascade="all, delete-orphan")


class EventLog(Base):
    """房間生命週期中記錄的事件（ROOM_CREATED、ORDER_CANCELLED ...）"""
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("session_records.id"), nullable=False, index=True)
    room_id = Column(String(64), nullable=False)
    event_type = Column(String(64), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    session = relationship("SessionRecord", back_populates="events")
