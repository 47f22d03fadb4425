"""
Status lifecycle tests: the pure status function and the scan against a
real (in-memory) store with a mocked solution finder.

Run: pytest backend/tests/test_lifecycle.py -v
"""
from __future__ import annotations

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from shared.models.enums import ContestStatus, Platform
from shared.repositories import ContestRepository

from scheduler.engine.lifecycle import StatusLifecycleEngine, compute_status
from tests.factories import T0, ManualClock, make_contest

START = T0
END = T0 + timedelta(hours=2)


# ── compute_status ──────────────────────────────────────────────────────

class TestComputeStatus:

    def test_before_start_is_upcoming(self) -> None:
        assert compute_status(START - timedelta(seconds=1), START, END) == ContestStatus.UPCOMING

    def test_at_start_is_ongoing(self) -> None:
        assert compute_status(START, START, END) == ContestStatus.ONGOING

    def test_inside_window_is_ongoing(self) -> None:
        assert compute_status(START + timedelta(hours=1), START, END) == ContestStatus.ONGOING

    def test_at_end_is_past(self) -> None:
        assert compute_status(END, START, END) == ContestStatus.PAST

    def test_after_end_is_past(self) -> None:
        assert compute_status(END + timedelta(days=3), START, END) == ContestStatus.PAST


# ── StatusLifecycleEngine ───────────────────────────────────────────────

@pytest.fixture
def finder() -> MagicMock:
    f = MagicMock()
    f.find = AsyncMock(return_value="vid-1")
    return f


@pytest.mark.asyncio
async def test_overdue_upcoming_contest_becomes_past_with_one_lookup(
    contests: ContestRepository, finder: MagicMock
) -> None:
    await contests.upsert_batch([make_contest()])
    clock = ManualClock(END + timedelta(minutes=10))
    engine = StatusLifecycleEngine(contests, finder, clock)

    summary = await engine.run()

    stored = (await contests.find_all())[0]
    assert stored.status == ContestStatus.PAST
    assert stored.solution_url == "vid-1"
    finder.find.assert_awaited_once_with(stored.name, END, Platform.CODEFORCES)
    assert summary == {"scanned": 1, "transitioned": 1, "solutions": 1, "errors": 0}


@pytest.mark.asyncio
async def test_second_run_leaves_past_contest_alone(
    contests: ContestRepository, finder: MagicMock
) -> None:
    await contests.upsert_batch([make_contest()])
    clock = ManualClock(END + timedelta(minutes=10))
    engine = StatusLifecycleEngine(contests, finder, clock)

    await engine.run()
    finder.find.return_value = "vid-2"
    summary = await engine.run()

    assert summary["scanned"] == 0
    assert finder.find.await_count == 1
    assert (await contests.find_all())[0].solution_url == "vid-1"


@pytest.mark.asyncio
async def test_already_past_without_solution_is_left_to_backfill(
    contests: ContestRepository, finder: MagicMock
) -> None:
    await contests.upsert_batch([make_contest(status=ContestStatus.PAST)])
    engine = StatusLifecycleEngine(contests, finder, ManualClock(END + timedelta(days=1)))

    summary = await engine.run()

    assert summary == {"scanned": 0, "transitioned": 0, "solutions": 0, "errors": 0}
    finder.find.assert_not_awaited()
    assert (await contests.find_all())[0].solution_url is None


@pytest.mark.asyncio
async def test_no_match_leaves_solution_unset(
    contests: ContestRepository, finder: MagicMock
) -> None:
    finder.find.return_value = None
    await contests.upsert_batch([make_contest()])
    engine = StatusLifecycleEngine(contests, finder, ManualClock(END + timedelta(minutes=1)))

    summary = await engine.run()

    stored = (await contests.find_all())[0]
    assert stored.status == ContestStatus.PAST
    assert stored.solution_url is None
    assert summary["solutions"] == 0


@pytest.mark.asyncio
async def test_upcoming_to_ongoing_does_not_search(
    contests: ContestRepository, finder: MagicMock
) -> None:
    await contests.upsert_batch([make_contest()])
    engine = StatusLifecycleEngine(contests, finder, ManualClock(START + timedelta(minutes=5)))

    await engine.run()

    assert (await contests.find_all())[0].status == ContestStatus.ONGOING
    finder.find.assert_not_awaited()


@pytest.mark.asyncio
async def test_unchanged_status_is_not_written(finder: MagicMock) -> None:
    repo = MagicMock()
    repo.find_by_status_not = AsyncMock(return_value=[make_contest()])
    repo.update_status = AsyncMock()
    engine = StatusLifecycleEngine(repo, finder, ManualClock(START - timedelta(hours=1)))

    summary = await engine.run()

    repo.update_status.assert_not_awaited()
    assert summary["transitioned"] == 0


@pytest.mark.asyncio
async def test_store_error_on_one_record_does_not_abort_scan(finder: MagicMock) -> None:
    first = make_contest("A").model_copy(update={"id": uuid.uuid4()})
    second = make_contest("B").model_copy(update={"id": uuid.uuid4()})
    repo = MagicMock()
    repo.find_by_status_not = AsyncMock(return_value=[first, second])
    repo.update_status = AsyncMock(
        side_effect=[OperationalError("UPDATE", {}, Exception("locked")), True]
    )
    repo.set_solution_url = AsyncMock(return_value=True)
    engine = StatusLifecycleEngine(repo, finder, ManualClock(END + timedelta(minutes=10)))

    summary = await engine.run()

    assert repo.update_status.await_count == 2
    assert summary["errors"] == 1
    assert summary["transitioned"] == 1
    finder.find.assert_awaited_once_with("B", END, Platform.CODEFORCES)
