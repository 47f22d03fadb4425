"""
Reconciliation store tests on in-memory SQLite.

Run: pytest backend/tests/test_repository.py -v
"""
from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from shared.models.enums import ContestStatus, Platform
from shared.repositories import ContestRepository, UserRepository

from tests.factories import T0, make_contest


@pytest.mark.asyncio
async def test_upsert_same_batch_twice_keeps_cardinality(contests: ContestRepository) -> None:
    batch = [
        make_contest("Codeforces Round 1"),
        make_contest("Weekly Contest 1", Platform.LEETCODE, start=T0 + timedelta(days=1)),
    ]
    assert await contests.upsert_batch(batch) == 2
    assert await contests.upsert_batch(batch) == 2
    assert await contests.count() == 2


@pytest.mark.asyncio
async def test_same_name_at_different_times_are_distinct(contests: ContestRepository) -> None:
    await contests.upsert_batch([
        make_contest("Daily Challenge", start=T0),
        make_contest("Daily Challenge", start=T0 + timedelta(days=1)),
    ])
    assert await contests.count() == 2


@pytest.mark.asyncio
async def test_upsert_refreshes_fields_but_keeps_lifecycle_state(
    contests: ContestRepository,
) -> None:
    await contests.upsert_batch([make_contest(url="https://old")])
    stored = (await contests.find_all())[0]
    await contests.update_status(stored.id, ContestStatus.PAST)
    await contests.set_solution_url(stored.id, "vid123")

    refreshed = make_contest(url="https://new", length=timedelta(hours=3))
    await contests.upsert_batch([refreshed])

    after = await contests.get(stored.id)
    assert after is not None
    assert after.url == "https://new"
    assert after.duration == "3h"
    assert after.end_time == T0 + timedelta(hours=3)
    assert after.status == ContestStatus.PAST
    assert after.solution_url == "vid123"


@pytest.mark.asyncio
async def test_times_round_trip_as_utc(contests: ContestRepository) -> None:
    await contests.upsert_batch([make_contest()])
    stored = (await contests.find_all())[0]
    assert stored.start_time == T0
    assert stored.start_time.utcoffset() == timedelta(0)


@pytest.mark.asyncio
async def test_find_by_status_not_excludes_past(contests: ContestRepository) -> None:
    await contests.upsert_batch([
        make_contest("A", status=ContestStatus.UPCOMING),
        make_contest("B", status=ContestStatus.ONGOING),
        make_contest("C", status=ContestStatus.PAST),
    ])
    names = {c.name for c in await contests.find_by_status_not(ContestStatus.PAST)}
    assert names == {"A", "B"}


@pytest.mark.asyncio
async def test_find_missing_solutions_filters_platform_status_and_url(
    contests: ContestRepository,
) -> None:
    await contests.upsert_batch([
        make_contest("CF past", status=ContestStatus.PAST),
        make_contest("CF solved", status=ContestStatus.PAST, start=T0 + timedelta(hours=5)),
        make_contest("CF upcoming", status=ContestStatus.UPCOMING),
        make_contest("HE past", Platform.HACKEREARTH, status=ContestStatus.PAST),
    ])
    solved = next(c for c in await contests.find_all() if c.name == "CF solved")
    await contests.set_solution_url(solved.id, "done")

    missing = await contests.find_missing_solutions({Platform.CODEFORCES, Platform.LEETCODE})
    assert [c.name for c in missing] == ["CF past"]
    assert await contests.find_missing_solutions(set()) == []


@pytest.mark.asyncio
async def test_solution_url_is_never_overwritten(contests: ContestRepository) -> None:
    await contests.upsert_batch([make_contest(status=ContestStatus.PAST)])
    stored = (await contests.find_all())[0]

    assert await contests.set_solution_url(stored.id, "first") is True
    assert await contests.set_solution_url(stored.id, "second") is False
    assert (await contests.get(stored.id)).solution_url == "first"


@pytest.mark.asyncio
async def test_update_status_unknown_id_reports_false(contests: ContestRepository) -> None:
    assert await contests.update_status(uuid.uuid4(), ContestStatus.PAST) is False


@pytest.mark.asyncio
async def test_bookmarks_toggle_idempotently(
    contests: ContestRepository, users: UserRepository
) -> None:
    await contests.upsert_batch([make_contest()])
    contest = (await contests.find_all())[0]
    user = await users.create(google_id="g-1", display_name="Ada")

    await users.set_bookmark(user.id, contest.id, True)
    await users.set_bookmark(user.id, contest.id, True)
    assert await users.saved_contest_ids(user.id) == {contest.id}

    await users.set_bookmark(user.id, contest.id, False)
    await users.set_bookmark(user.id, contest.id, False)
    assert await users.saved_contest_ids(user.id) == set()
