"""
Backfill pass tests.

Run: pytest backend/tests/test_backfill.py -v
"""
from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.models.enums import ContestStatus, Platform
from shared.repositories import ContestRepository

from scheduler.engine.backfill import SolutionBackfill
from tests.factories import T0, make_contest


def _finder(return_value: str | None = "vid") -> MagicMock:
    f = MagicMock()
    f.trusted_platforms = {Platform.CODEFORCES, Platform.LEETCODE}
    f.find = AsyncMock(return_value=return_value)
    return f


async def _seed_past_codeforces(contests: ContestRepository, solved: int, unsolved: int) -> None:
    batch = [
        make_contest(f"Codeforces Round {i}", start=T0 + timedelta(days=i), status=ContestStatus.PAST)
        for i in range(solved + unsolved)
    ]
    await contests.upsert_batch(batch)
    for contest in (await contests.find_all())[:solved]:
        await contests.set_solution_url(contest.id, f"existing-{contest.name}")


@pytest.mark.asyncio
async def test_backfill_looks_up_only_missing_solutions(contests: ContestRepository) -> None:
    await _seed_past_codeforces(contests, solved=2, unsolved=3)
    finder = _finder()

    summary = await SolutionBackfill(contests, finder).run()

    assert finder.find.await_count == 3
    assert summary == {"checked": 3, "filled": 3}
    assert await contests.find_missing_solutions({Platform.CODEFORCES}) == []


@pytest.mark.asyncio
async def test_backfill_ignores_untrusted_platforms(contests: ContestRepository) -> None:
    await contests.upsert_batch([
        make_contest("HackerEarth Sprint", Platform.HACKEREARTH, status=ContestStatus.PAST),
    ])
    finder = _finder()

    summary = await SolutionBackfill(contests, finder).run()

    finder.find.assert_not_awaited()
    assert summary == {"checked": 0, "filled": 0}


@pytest.mark.asyncio
async def test_backfill_is_safe_to_rerun(contests: ContestRepository) -> None:
    await _seed_past_codeforces(contests, solved=0, unsolved=2)
    finder = _finder()
    backfill = SolutionBackfill(contests, finder)

    await backfill.run()
    await backfill.run()

    assert finder.find.await_count == 2


@pytest.mark.asyncio
async def test_backfill_misses_stay_pending(contests: ContestRepository) -> None:
    await _seed_past_codeforces(contests, solved=0, unsolved=2)

    summary = await SolutionBackfill(contests, _finder(None)).run()

    assert summary == {"checked": 2, "filled": 0}
    assert len(await contests.find_missing_solutions({Platform.CODEFORCES})) == 2
