"""
FastAPI application factory for the Contest Tracker API service.

Creates the app with:
- REST routes (contests, bookmarks, calendar export)
- Middleware stack
- Health, readiness and pipeline status endpoints
- Lifespan management (startup/shutdown)
- The embedded pipeline scheduler, unless jobs run in a separate worker
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional, Union

from fastapi import FastAPI
from sqlalchemy import text

from shared.config import get_settings
from shared.repositories import ContestRepository, UserRepository
from shared.utils.database import DatabaseManager, connect_with_retry
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server
from shared.utils.redis_manager import RedisManager, connect_optional_redis

from api.calendar import CalendarClient
from api.credentials import CredentialProvider
from api.dependencies import get_db, get_redis, get_scheduler, init_dependencies
from api.middleware import setup_middleware
from api.routes.calendar import router as calendar_router
from api.routes.contests import router as contests_router
from scheduler.service import (
    BACKFILL_JOB,
    FETCH_JOB,
    STATUS_JOB,
    Pipeline,
    SchedulerService,
    build_pipeline,
)

logger = get_logger(__name__)

_pipeline: Optional[Pipeline] = None


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing without a database."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    The database must be reachable before anything is served or scheduled;
    connect_with_retry gives up after its last attempt and startup fails.
    """
    global _pipeline

    settings = get_settings()
    setup_logging("api")
    start_metrics_server()

    db = DatabaseManager(settings)
    await connect_with_retry(db.connect, "Database")

    redis = await connect_optional_redis(settings)

    credentials = CredentialProvider(UserRepository(db), settings=settings)
    calendar = CalendarClient(settings=settings)
    await credentials.start()
    await calendar.start()

    scheduler: SchedulerService | None = None
    scheduler_task: asyncio.Task[None] | None = None
    if settings.embedded_scheduler:
        _pipeline = build_pipeline(db, settings)
        await _pipeline.start()
        scheduler = SchedulerService(_pipeline.jobs, redis=redis, settings=settings)
        scheduler_task = asyncio.create_task(scheduler.run(), name="scheduler")

    init_dependencies(db, redis, credentials, calendar, scheduler)

    logger.info(
        "api_service_started",
        host=settings.api_host,
        port=settings.api_port,
        embedded_scheduler=settings.embedded_scheduler,
    )

    yield

    # Shutdown
    if scheduler is not None and scheduler_task is not None:
        scheduler.request_shutdown()
        await scheduler_task
    if _pipeline is not None:
        await _pipeline.close()
        _pipeline = None
    await calendar.close()
    await credentials.close()
    await db.disconnect()
    if redis is not None:
        await redis.disconnect()
    logger.info("api_service_stopped")


async def _database_ok(db: DatabaseManager) -> bool:
    try:
        async with db.read_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning("readiness_database_failed", error=str(exc))
        return False


async def _redis_ok(redis: RedisManager | None) -> Optional[bool]:
    if redis is None:
        return None
    try:
        await redis.client.ping()
        return True
    except Exception as exc:
        logger.warning("readiness_redis_failed", error=str(exc))
        return False


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing without a database."""
    app = FastAPI(
        title="Contest Tracker API",
        description="Upcoming coding contests across platforms",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Middleware
    setup_middleware(app)

    # REST routes
    app.include_router(contests_router)
    app.include_router(calendar_router)

    # Health check
    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "api"}

    @app.get("/ready", tags=["system"])
    async def readiness() -> Dict[str, Union[str, bool, None]]:
        """Readiness probe: checks the database and, if configured, Redis."""
        db_ok = await _database_ok(get_db())
        redis_ok = await _redis_ok(get_redis())
        ready = db_ok and redis_ok is not False
        return {
            "status": "ok" if ready else "degraded",
            "database": db_ok,
            "redis": redis_ok,
        }

    @app.get("/v1/status", tags=["system"])
    async def system_status() -> dict[str, Any]:
        """Pipeline summary: stored contests, last job runs, solution search health."""
        db = get_db()
        db_ok = await _database_ok(db)

        contests: Optional[int] = None
        if db_ok:
            contests = await ContestRepository(db).count()

        jobs: dict[str, Optional[str]] = {}
        scheduler = get_scheduler()
        redis = get_redis()
        for name in (FETCH_JOB, STATUS_JOB, BACKFILL_JOB):
            last_run = scheduler.last_runs.get(name) if scheduler is not None else None
            if last_run is None and redis is not None:
                try:
                    last_run = await redis.get_last_job_run(name)
                except Exception as exc:
                    logger.warning("status_job_marker_failed", job=name, error=str(exc))
            jobs[name] = last_run

        return {
            "status": "ok" if db_ok else "degraded",
            "database": db_ok,
            "contests": contests,
            "jobs": jobs,
            "solution_search": _pipeline.finder.breaker.stats if _pipeline is not None else None,
        }

    return app


app = create_app()
