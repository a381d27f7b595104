from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./dineverse.db"
    persist_sessions: bool = True
    log_level: str = "INFO"

    # 烹飪逾時看門狗：超過 estimated * factor + grace 秒即取消並補償
    cooking_timeout_factor: float = 2.0
    cooking_timeout_grace: float = 5.0
    watchdog_interval: float = 1.0

    # 客戶端 failsafe 參數（由 /api/menu 一併提供給前端）
    request_timeout: float = 8.0
    request_max_retries: int = 2
    latency_ceiling_ms: int = 400

    # NPC 對話（未設定金鑰時使用靜態回應）
    gemini_api_key: Optional[str] = None
    gemini_url: str = "https://generativelanguage.googleapis.com/v1beta/models/gemini-pro:generateContent"
    dialogue_timeout: float = 5.0

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()

# SQLite 只在封存與查詢 session 時使用，FastAPI 的 threadpool 會跨執行緒共用連線
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """FastAPI dependency：請求期間使用的 Session（/api/sessions 查詢封存紀錄）"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _find_session(args, kwargs) -> Optional[Session]:
    if args and isinstance(args[0], Session):
        return args[0]
    return kwargs.get("db")


def transactional(func):
    """
    Transaction decorator：成功時 commit，異常時 rollback 並重新拋出

    被包裝的函式第一個參數必須是 db: Session，
    函式本身只負責 add / flush，不要自己 commit

        @staticmethod
        @transactional
        def archive_session(db: Session, stats, events): ...
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = _find_session(args, kwargs)
        if db is None:
            raise ValueError(f"{func.__name__} is @transactional and needs a db Session as its first argument")

        try:
            result = func(*args, **kwargs)
            db.commit()
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise
        return result

    return wrapper
