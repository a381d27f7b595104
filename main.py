import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from database import Base, engine, SessionLocal, get_settings
from api import rooms, dialogue, websocket
from api.websocket import ConnectionManager
from core.relay_handler import RelayProtocolHandler
from core.session_archive import SessionArchive
from core.session_store import SessionStore
from services.dialogue_service import build_dialogue_provider

logger = logging.getLogger(__name__)


async def run_watchdog(app: FastAPI, interval: float):
    """週期性檢查烹飪逾時的訂單，並把補償事件送給房間"""
    while True:
        await asyncio.sleep(interval)
        try:
            await app.state.connections.deliver(app.state.relay_handler.sweep())
        except Exception as e:
            logger.error(f"Cooking watchdog failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    # Startup: 建立資料庫表（只用於封存結束的 session）
    Base.metadata.create_all(bind=engine)

    archive = SessionArchive(SessionLocal) if settings.persist_sessions else None
    app.state.relay_handler = RelayProtocolHandler(
        SessionStore(),
        archive=archive,
        cooking_timeout_factor=settings.cooking_timeout_factor,
        cooking_timeout_grace=settings.cooking_timeout_grace,
    )
    app.state.connections = ConnectionManager()
    app.state.dialogue = build_dialogue_provider(settings)

    watchdog = asyncio.create_task(run_watchdog(app, settings.watchdog_interval))
    yield
    # Shutdown: 停止看門狗
    watchdog.cancel()
    try:
        await watchdog
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="DineVerse API",
    description="Session relay backend for the two-player restaurant game",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(rooms.router)
app.include_router(dialogue.router)
app.include_router(websocket.router)


@app.get("/")
def root():
    return {"message": "DineVerse API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy", "rooms": len(app.state.relay_handler.store)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
