from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import socketio
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from devfusion.config import Settings, settings
from devfusion.database import AsyncSessionLocal, init_db
from devfusion.routes import api_router
from devfusion.services.ai_interceptor import AIMentionInterceptor
from devfusion.services.ai_service import AIService
from devfusion.services.auth_service import AuthService
from devfusion.services.gateway import ConnectionGateway
from devfusion.services.message_relay import MessageRelay
from devfusion.services.rate_limiter import AIRateLimiter
from devfusion.services.realtime_service import RealtimeService
from devfusion.services.session_tracker import SessionTracker
from devfusion.services.task_service import TaskService

load_dotenv()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config: Settings = app.state.settings
    task_service: TaskService = app.state.task_service

    if config.connect_database_before_listening:
        await init_db()
    else:
        await task_service.spawn(init_db(), name="init-db")
        logger.info("Database initialization scheduled in the background")

    try:
        yield
    finally:
        await app.state.realtime.shutdown()
        await task_service.shutdown()


def create_api(
    config: Settings = settings,
    *,
    sio: socketio.AsyncServer | None = None,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> FastAPI:
    """Build the REST application and the realtime services it shares state with."""

    if sio is None:
        sio = socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=config.cors_origins,
            max_http_buffer_size=config.max_payload_bytes,
        )

    task_service = TaskService()
    rate_limiter = AIRateLimiter(min_interval=config.ai_min_interval_seconds)
    ai_service = AIService(model=config.ai_model)
    auth_service = AuthService(
        secret_key=config.jwt_secret,
        algorithm=config.jwt_algorithm,
        expires_hours=config.jwt_expires_hours,
    )

    relay = MessageRelay(sio, session_factory)
    realtime = RealtimeService(
        sio=sio,
        gateway=ConnectionGateway(auth_service, session_factory),
        relay=relay,
        interceptor=AIMentionInterceptor(
            ai_service,
            relay,
            session_factory,
            rate_limiter=rate_limiter if config.ai_throttle_realtime else None,
            trigger=config.ai_trigger,
            apply_file_tree_patches=config.ai_apply_file_tree_patches,
        ),
        session_tracker=SessionTracker(session_factory),
        task_service=task_service,
    )
    realtime.register()

    app = FastAPI(
        title="DevFusion Backend",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=config.api_prefix)

    app.state.settings = config
    app.state.sio = sio
    app.state.task_service = task_service
    app.state.rate_limiter = rate_limiter
    app.state.ai_service = ai_service
    app.state.auth_service = auth_service
    app.state.realtime = realtime

    return app


def create_app(config: Settings = settings) -> socketio.ASGIApp:
    """Serve Socket.IO and the REST API from one ASGI application."""

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    api = create_api(config)
    return socketio.ASGIApp(api.state.sio, other_asgi_app=api)


app = create_app()
