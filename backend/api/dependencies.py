"""
Dependency injection for the API service.
Provides the database, repositories, Google collaborators and the viewer
identity to route handlers.
"""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Header

from shared.repositories import ContestRepository, UserRepository
from shared.utils.database import DatabaseManager
from shared.utils.redis_manager import RedisManager

from api.calendar import CalendarClient
from api.credentials import CredentialProvider

# Module-level singletons, initialized at startup
_db: DatabaseManager | None = None
_redis: RedisManager | None = None
_credentials: CredentialProvider | None = None
_calendar: CalendarClient | None = None
_scheduler = None


def init_dependencies(
    db: DatabaseManager,
    redis: RedisManager | None = None,
    credentials: CredentialProvider | None = None,
    calendar: CalendarClient | None = None,
    scheduler=None,
) -> None:
    """Initialize module-level singletons. Called once at startup."""
    global _db, _redis, _credentials, _calendar, _scheduler
    _db = db
    _redis = redis
    _credentials = credentials
    _calendar = calendar
    _scheduler = scheduler


def get_db() -> DatabaseManager:
    """FastAPI dependency: returns the shared DatabaseManager."""
    if _db is None:
        raise RuntimeError("DatabaseManager not initialized, call init_dependencies first")
    return _db


def get_redis() -> Optional[RedisManager]:
    """The shared RedisManager, or None when Redis is not configured."""
    return _redis


def get_scheduler():
    """The in-process SchedulerService when jobs run embedded, else None."""
    return _scheduler


def get_contest_repository(db: DatabaseManager = Depends(get_db)) -> ContestRepository:
    return ContestRepository(db)


def get_user_repository(db: DatabaseManager = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_credential_provider() -> CredentialProvider:
    if _credentials is None:
        raise RuntimeError("CredentialProvider not initialized, call init_dependencies first")
    return _credentials


def get_calendar_client() -> CalendarClient:
    if _calendar is None:
        raise RuntimeError("CalendarClient not initialized, call init_dependencies first")
    return _calendar


def get_viewer_id(
    x_viewer_id: Optional[str] = Header(default=None, alias="X-Viewer-Id"),
) -> Optional[uuid.UUID]:
    """
    The signed-in viewer as asserted by the session layer in front of the
    API. Missing or malformed ids are treated as anonymous.
    """
    if not x_viewer_id:
        return None
    try:
        return uuid.UUID(x_viewer_id)
    except ValueError:
        return None
