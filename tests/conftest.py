import os
import tempfile

# database.py 在 import 時讀取設定，必須在任何專案模組之前設定環境變數
_DB_DIR = tempfile.mkdtemp(prefix="dineverse-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["GEMINI_API_KEY"] = ""
os.environ["WATCHDOG_INTERVAL"] = "3600"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  註冊 SessionRecord / EventLog
from database import Base
from core.relay_handler import RelayProtocolHandler
from core.session_store import SessionStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store(clock):
    return SessionStore(clock=clock)


@pytest.fixture()
def handler(store, clock):
    return RelayProtocolHandler(store, clock=clock)


@pytest.fixture()
def session_factory():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False},
                           poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
