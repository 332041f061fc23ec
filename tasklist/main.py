import time
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from tasklist.cache.layer import UserTaskCache
from tasklist.core.config import DEV_JWT_SECRET, Settings, get_settings
from tasklist.core.errors import register_error_handlers
from tasklist.core.logging_setup import setup_logging
from tasklist.core.security import TokenCodec
from tasklist.database import create_db_and_tables, create_engine, create_session_factory
from tasklist.dependencies import CacheDep
from tasklist.models import CacheStats
from tasklist.routers import activity, auth, tasks
from tasklist.services.audit import AuditSink
from tasklist.services.identity import IdentityService
from tasklist.services.store import TaskStore
from tasklist.services.task_service import TaskService

import logging

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    cache_clock: Callable[[], float] = time.monotonic,
) -> FastAPI:
    """
    Build the application with its own engine, cache and services.

    The cache lives exactly as long as the returned app and starts empty.
    """
    settings = settings or get_settings()

    engine = create_engine(settings.database_url, echo=settings.sql_echo)
    session_factory = create_session_factory(engine)

    if settings.jwt_secret == DEV_JWT_SECRET:
        logger.warning("JWT_SECRET not set; using the development secret")

    cache = UserTaskCache(
        ttl_seconds=settings.cache_ttl_seconds,
        clock=cache_clock,
    )
    audit = AuditSink(
        session_factory,
        timeout=settings.audit_timeout_seconds,
        recent_limit=settings.audit_recent_limit,
    )
    store = TaskStore(session_factory, timeout=settings.store_timeout_seconds)
    identity = IdentityService(
        session_factory,
        TokenCodec(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_days=settings.jwt_expires_days,
        ),
        timeout=settings.store_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await create_db_and_tables(engine)
        logger.info(f"Database ready, cache ttl={settings.cache_ttl_seconds}s")
        yield
        await engine.dispose()

    app = FastAPI(
        title="Task List API",
        description="Per-user task lists with a short-lived list cache and an audit log",
        swagger_ui_parameters={"displayRequestDuration": True},
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.cache = cache
    app.state.audit = audit
    app.state.identity = identity
    app.state.task_service = TaskService(store, cache, audit)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    register_error_handlers(app)

    # Include routers
    app.include_router(auth.router)
    app.include_router(tasks.router)
    app.include_router(activity.router)

    @app.get("/")
    async def root():
        return {
            "message": "Tasks backend is running",
            "docs": "/docs",
            "version": "1.0.0",
        }

    @app.get("/health")
    @app.get("/healthz")
    async def health_check():
        return {"status": "healthy"}

    @app.get("/metrics", response_model=CacheStats)
    async def metrics(cache: CacheDep):
        return cache.get_stats()

    return app


def build_app() -> FastAPI:
    """Entry point for `uvicorn tasklist.main:build_app --factory`."""
    settings = get_settings()
    setup_logging(settings.log_level)
    return create_app(settings)
