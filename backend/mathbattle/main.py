import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

import socketio

from .config import settings
from .db import Base, SessionLocal, engine
from .errors import BattleError, battle_error_handler, request_validation_handler, unhandled_error_handler
from .models import battle_round_details, battle_sessions, users  # noqa: F401  registers tables
from .routers.auth import router as auth_router
from .routers.battle_router import router as battle_router
from .routers.socket_events import register_socket_events
from .services.realtime_hub import RealtimeHub

logger = logging.getLogger("uvicorn")


def create_app(session_factory=SessionLocal, create_tables: bool | None = None) -> FastAPI:
    logger.setLevel(settings.LOG_LEVEL)

    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=settings.CORS_ORIGINS,
    )
    hub = RealtimeHub(
        sio,
        countdown_from=settings.COUNTDOWN_FROM,
        countdown_interval=settings.COUNTDOWN_INTERVAL,
    )
    register_socket_events(sio, hub, session_factory)

    if create_tables is None:
        create_tables = settings.CREATE_TABLES

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if create_tables:
            logger.info("Creating database tables")
            Base.metadata.create_all(bind=session_factory.kw.get("bind", engine))
        logger.info("Math battle API ready")
        yield
        await hub.shutdown()
        logger.info("Realtime hub stopped")

    app = FastAPI(title="Math Battle API", version="0.1.0", lifespan=lifespan)
    app.state.sio = sio
    app.state.hub = hub
    app.state.session_factory = session_factory

    socket_app = socketio.ASGIApp(sio)
    app.mount("/ws", socket_app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BattleError, battle_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # routers
    app.include_router(auth_router)
    app.include_router(battle_router)

    @app.get("/")
    def root():
        return {"message": "Backend is running!"}

    @app.get("/health")
    def health_check():
        db = app.state.session_factory()
        try:
            db.execute(text("SELECT 1"))
            return {"message": "healthy", "database": "ok", "connected_users": len(hub.connected_users)}
        except Exception as exc:
            return {"message": "error", "database": str(exc)}
        finally:
            db.close()

    return app


app = create_app()
