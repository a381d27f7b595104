"""
Session Archive：把結束的 session 寫入資料庫

職責：
1. end-session 時保存整場統計（SessionRecord）
2. 保存房間內記錄的事件（EventLog）
3. 查詢歷史 session

注意：
- 封存失敗只記 log，不影響 relay（遊戲流程不能因為資料庫出錯而中斷）
"""
from datetime import datetime, timezone
from typing import Callable, List
import logging

from sqlalchemy.orm import Session

from database import transactional
from models import SessionRecord, EventLog

logger = logging.getLogger(__name__)


class SessionArchive:
    """已結束 session 的持久化"""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def save(self, stats: dict, events: List[dict]) -> bool:
        """
        封存一場 session

        參數：
            stats: services.stats_service.build_session_stats 的結果
            events: RoomRecord.events

        返回：
            True 如果寫入成功
        """
        db = self._session_factory()
        try:
            record = SessionArchive.archive_session(db, stats, events)
            logger.info(f"Archived session {record.id} for room {stats['roomId']}")
            return True
        except Exception as e:
            logger.error(f"Failed to archive session for room {stats.get('roomId')}: {e}", exc_info=True)
            return False
        finally:
            db.close()

    @staticmethod
    @transactional
    def archive_session(db: Session, stats: dict, events: List[dict]) -> SessionRecord:
        """
        建立 SessionRecord 與對應的 EventLog

        使用 @transactional，自動處理 commit/rollback
        """
        summary = stats["stats"]
        record = SessionRecord(
            room_id=stats["roomId"],
            players=stats["players"],
            orders=stats["orders"],
            ratings=stats["ratings"],
            served_orders=summary["servedOrders"],
            revenue=summary["revenue"],
            refunds=summary["refunds"],
            chef_penalty=summary["chefPenalty"],
            completed_at=datetime.fromtimestamp(stats["completedAt"], tz=timezone.utc),
        )
        db.add(record)
        db.flush()  # 取得 record.id

        for event in events:
            db.add(EventLog(
                session_id=record.id,
                room_id=stats["roomId"],
                event_type=event["event_type"],
                data=event["data"],
            ))

        return record

    @staticmethod
    def list_sessions(db: Session, limit: int = 50) -> List[SessionRecord]:
        return (
            db.query(SessionRecord)
            .order_by(SessionRecord.completed_at.desc())
            .limit(limit)
            .all()
        )
