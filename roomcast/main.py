# roomcast/main.py

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomcast.core.config import Settings, settings as default_settings
from roomcast.core.logging import setup_logging, get_logger
from roomcast.api.routes import root, health, metrics, rooms
from roomcast.api import websocket as websocket_module
from roomcast.services.chat_service import ChatService
from roomcast.services.idle_room_sweeper import IdleRoomSweeper

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI app with its own ChatService and idle room sweeper.

    Nothing is shared between two apps, so tests can build as many as they
    need with their own timers.
    """
    settings = settings or default_settings

    app = FastAPI(title="roomcast - Ephemeral Chat Rooms")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    chat = ChatService(settings=settings)
    sweeper = IdleRoomSweeper(
        chat.evict_idle_rooms,
        interval=settings.SWEEP_INTERVAL_SECONDS,
        max_age=settings.IDLE_ROOM_MAX_AGE_SECONDS,
    )
    app.state.chat = chat
    app.state.sweeper = sweeper

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(rooms.router)

    # WebSocket routes
    app.include_router(websocket_module.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info("🚀 Application starting - ephemeral rooms enabled")
        sweeper.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        await sweeper.stop()
        chat.shutdown()
        logger.info("Application stopped")

    return app


# Configure logging first
setup_logging(default_settings)
app = create_app()


def run() -> None:
    import uvicorn
    uvicorn.run("roomcast.main:app", host=default_settings.HOST, port=default_settings.PORT)


if __name__ == "__main__":
    run()
