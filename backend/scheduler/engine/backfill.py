"""
One-shot repair of Past contests that never got a solution video, e.g.
because they finished while the worker was down.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from shared.repositories import ContestRepository
from shared.utils.logging import get_logger

from ingest.solutions import SolutionFinder

logger = get_logger(__name__)


class SolutionBackfill:
    """Looks up solutions for Past contests on trusted-channel platforms."""

    def __init__(self, contests: ContestRepository, finder: SolutionFinder) -> None:
        self._contests = contests
        self._finder = finder

    async def run(self) -> dict[str, Any]:
        pending = await self._contests.find_missing_solutions(self._finder.trusted_platforms)
        if not pending:
            logger.info("backfill_nothing_to_do")
            return {"checked": 0, "filled": 0}

        logger.info("backfill_started", pending=len(pending))
        filled = 0
        for contest in pending:
            video_id = await self._finder.find(contest.name, contest.end_time, contest.platform)
            if not video_id:
                continue
            try:
                if await self._contests.set_solution_url(contest.id, video_id):
                    filled += 1
                    logger.info("solution_backfilled", name=contest.name, video_id=video_id)
            except SQLAlchemyError as exc:
                logger.error("backfill_write_failed", name=contest.name, error=str(exc))

        logger.info("backfill_finished", checked=len(pending), filled=filled)
        return {"checked": len(pending), "filled": filled}
