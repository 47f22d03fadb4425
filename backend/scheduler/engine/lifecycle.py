"""
Contest status lifecycle for the Contest Tracker worker.

Each stored contest moves Upcoming → On-going → Past as wall-clock time
passes its start and end. The cached status is recomputed against a fresh
"now" on every scan; Past is terminal. Arriving at Past triggers one
solution-video lookup.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from shared.models.domain import Contest
from shared.models.enums import ContestStatus
from shared.repositories import ContestRepository
from shared.utils.clock import Clock
from shared.utils.logging import get_logger
from shared.utils.metrics import CONTESTS_TRACKED, STATUS_TRANSITIONS

from ingest.solutions import SolutionFinder

logger = get_logger(__name__)


def compute_status(now: datetime, start_time: datetime, end_time: datetime) -> ContestStatus:
    """Status of a contest window at ``now``."""
    if now >= end_time:
        return ContestStatus.PAST
    if start_time <= now:
        return ContestStatus.ONGOING
    return ContestStatus.UPCOMING


class StatusLifecycleEngine:
    """
    Scans non-Past contests, writes changed statuses one record at a time,
    and looks up a solution video for contests that just became Past.

    Contests that were already Past before the scan are not retried here;
    that is the backfill pass's job.
    """

    def __init__(
        self,
        contests: ContestRepository,
        finder: SolutionFinder,
        clock: Optional[Clock] = None,
    ) -> None:
        self._contests = contests
        self._finder = finder
        self._clock = clock or Clock()

    async def run(self) -> dict[str, Any]:
        now = self._clock.now()
        candidates = await self._contests.find_by_status_not(ContestStatus.PAST)
        CONTESTS_TRACKED.set(len(candidates))

        summary = {"scanned": len(candidates), "transitioned": 0, "solutions": 0, "errors": 0}
        for contest in candidates:
            try:
                changed, found = await self._advance(contest, now)
            except SQLAlchemyError as exc:
                summary["errors"] += 1
                logger.error(
                    "status_update_failed",
                    contest_id=str(contest.id),
                    name=contest.name,
                    error=str(exc),
                )
                continue
            summary["transitioned"] += int(changed)
            summary["solutions"] += int(found)

        if summary["transitioned"] or summary["errors"]:
            logger.info("status_scan_completed", **summary)
        return summary

    async def _advance(self, contest: Contest, now: datetime) -> tuple[bool, bool]:
        target = compute_status(now, contest.start_time, contest.end_time)
        if target == contest.status:
            return False, False

        await self._contests.update_status(contest.id, target)
        STATUS_TRANSITIONS.labels(to_status=target.value).inc()
        logger.info(
            "contest_status_updated",
            name=contest.name,
            from_status=contest.status.value,
            to_status=target.value,
        )

        if target != ContestStatus.PAST or contest.solution_url:
            return True, False

        video_id = await self._finder.find(contest.name, contest.end_time, contest.platform)
        if not video_id:
            return True, False
        stored = await self._contests.set_solution_url(contest.id, video_id)
        if stored:
            logger.info("solution_saved", name=contest.name, video_id=video_id)
        return True, stored
