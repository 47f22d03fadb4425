"""
Persistence for contests, users and bookmarks.

ContestRepository is the reconciliation store of the pipeline: idempotent
upserts keyed on (name, start_time), status-scoped queries and single-record
updates. Every write is its own transaction; nothing ties two contest rows together.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from shared.models.domain import Contest, UserAccount
from shared.models.enums import ContestStatus, Platform
from shared.models.orm import ContestORM, UserORM, saved_contests
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import CONTESTS_UPSERTED

logger = get_logger(__name__)

# Columns an adapter refresh is allowed to overwrite on an existing record.
# status and solution_url belong to the lifecycle scan.
_REFRESHED_COLUMNS = ("platform", "duration", "end_time", "url")


def _insert_for(dialect_name: str) -> Any:
    if dialect_name == "postgresql":
        return pg_insert
    if dialect_name == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Upserts are not supported on dialect {dialect_name!r}")


class ContestRepository:
    """Contest store shared by the worker jobs and the read API."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    # ── Reconciliation ──────────────────────────────────────────────────

    async def upsert_batch(self, contests: Sequence[Contest]) -> int:
        """
        Insert or refresh each contest, matching on (name, start_time).

        Returns the number of records written. A record that fails to write
        is logged and skipped; the rest of the batch still lands.
        """
        insert = _insert_for(self._db.dialect_name)
        written = 0
        for contest in contests:
            now = datetime.now(timezone.utc)
            stmt = insert(ContestORM).values(
                id=uuid.uuid4(),
                name=contest.name,
                platform=contest.platform.value,
                duration=contest.duration,
                start_time=contest.start_time,
                end_time=contest.end_time,
                status=contest.status.value,
                url=contest.url,
                solution_url=None,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["name", "start_time"],
                set_={
                    **{col: getattr(stmt.excluded, col) for col in _REFRESHED_COLUMNS},
                    "updated_at": now,
                },
            )
            try:
                async with self._db.write_session() as session:
                    await session.execute(stmt)
            except SQLAlchemyError as exc:
                logger.error(
                    "contest_upsert_failed",
                    name=contest.name,
                    platform=contest.platform.value,
                    error=str(exc),
                )
                continue
            written += 1
            CONTESTS_UPSERTED.labels(platform=contest.platform.value).inc()
        return written

    # ── Queries ─────────────────────────────────────────────────────────

    async def find_all(self) -> list[Contest]:
        async with self._db.read_session() as session:
            result = await session.execute(select(ContestORM).order_by(ContestORM.start_time))
            return [Contest.model_validate(row) for row in result.scalars()]

    async def find_by_status_not(self, status: ContestStatus) -> list[Contest]:
        """All contests whose cached status differs from ``status``."""
        async with self._db.read_session() as session:
            stmt = select(ContestORM).where(ContestORM.status != status.value)
            result = await session.execute(stmt)
            return [Contest.model_validate(row) for row in result.scalars()]

    async def find_missing_solutions(self, platforms: Iterable[Platform]) -> list[Contest]:
        """Past contests on the given platforms that still have no solution video."""
        platform_values = [p.value for p in platforms]
        if not platform_values:
            return []
        async with self._db.read_session() as session:
            stmt = select(ContestORM).where(
                ContestORM.status == ContestStatus.PAST.value,
                ContestORM.solution_url.is_(None),
                ContestORM.platform.in_(platform_values),
            )
            result = await session.execute(stmt)
            return [Contest.model_validate(row) for row in result.scalars()]

    async def get(self, contest_id: uuid.UUID) -> Optional[Contest]:
        async with self._db.read_session() as session:
            row = await session.get(ContestORM, contest_id)
            return Contest.model_validate(row) if row else None

    async def count(self) -> int:
        async with self._db.read_session() as session:
            result = await session.execute(select(func.count()).select_from(ContestORM))
            return int(result.scalar() or 0)

    # ── Single-record updates ───────────────────────────────────────────

    async def update_status(self, contest_id: uuid.UUID, status: ContestStatus) -> bool:
        async with self._db.write_session() as session:
            result = await session.execute(
                update(ContestORM)
                .where(ContestORM.id == contest_id)
                .values(status=status.value, updated_at=datetime.now(timezone.utc))
            )
            return result.rowcount > 0

    async def set_solution_url(self, contest_id: uuid.UUID, video_id: str) -> bool:
        """Record a solution video. No-op (returns False) if one is already stored."""
        async with self._db.write_session() as session:
            result = await session.execute(
                update(ContestORM)
                .where(ContestORM.id == contest_id, ContestORM.solution_url.is_(None))
                .values(solution_url=video_id, updated_at=datetime.now(timezone.utc))
            )
            return result.rowcount > 0


class UserRepository:
    """User records as far as bookmarks and calendar export need them."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def create(
        self,
        google_id: str,
        display_name: str = "",
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        token_expires_at: Optional[datetime] = None,
    ) -> UserAccount:
        row = UserORM(
            google_id=google_id,
            display_name=display_name,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=token_expires_at,
        )
        async with self._db.write_session() as session:
            session.add(row)
            await session.flush()
            return UserAccount.model_validate(row)

    async def get(self, user_id: uuid.UUID) -> Optional[UserAccount]:
        async with self._db.read_session() as session:
            row = await session.get(UserORM, user_id)
            return UserAccount.model_validate(row) if row else None

    async def update_access_token(
        self, user_id: uuid.UUID, access_token: str, expires_at: datetime
    ) -> None:
        async with self._db.write_session() as session:
            await session.execute(
                update(UserORM)
                .where(UserORM.id == user_id)
                .values(access_token=access_token, token_expires_at=expires_at)
            )

    # ── Bookmarks ───────────────────────────────────────────────────────

    async def saved_contest_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        async with self._db.read_session() as session:
            result = await session.execute(
                select(saved_contests.c.contest_id).where(saved_contests.c.user_id == user_id)
            )
            return set(result.scalars())

    async def set_bookmark(self, user_id: uuid.UUID, contest_id: uuid.UUID, saved: bool) -> None:
        """Add or remove a bookmark; both directions are idempotent."""
        async with self._db.write_session() as session:
            if saved:
                insert = _insert_for(self._db.dialect_name)
                await session.execute(
                    insert(saved_contests)
                    .values(user_id=user_id, contest_id=contest_id)
                    .on_conflict_do_nothing()
                )
            else:
                await session.execute(
                    delete(saved_contests).where(
                        saved_contests.c.user_id == user_id,
                        saved_contests.c.contest_id == contest_id,
                    )
                )
