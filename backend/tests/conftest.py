"""
Shared fixtures: an in-memory SQLite store (aiosqlite) and repositories.
"""
from __future__ import annotations

from typing import AsyncIterator

import pytest
import pytest_asyncio

from shared.config import Settings
from shared.repositories import ContestRepository, UserRepository
from shared.utils.database import DatabaseManager


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        metrics_enabled=False,
        youtube_api_key="test-key",
        adapter_max_retries=1,
    )


@pytest_asyncio.fixture
async def db(settings: Settings) -> AsyncIterator[DatabaseManager]:
    manager = DatabaseManager(settings)
    await manager.connect()
    yield manager
    await manager.disconnect()


@pytest.fixture
def contests(db: DatabaseManager) -> ContestRepository:
    return ContestRepository(db)


@pytest.fixture
def users(db: DatabaseManager) -> UserRepository:
    return UserRepository(db)
