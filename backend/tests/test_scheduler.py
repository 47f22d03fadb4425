"""
Scheduler tests driven by a ManualClock: startup runs, cadences, the
run-once backfill and overlap skipping.

Run: pytest backend/tests/test_scheduler.py -v
"""
from __future__ import annotations

import asyncio
import time
from collections import Counter
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.config import Settings
from shared.utils.database import connect_with_retry
from shared.utils.redis_manager import RedisManager, connect_optional_redis

from scheduler.service import (
    BACKFILL_JOB,
    FETCH_JOB,
    STATUS_JOB,
    ScheduledJob,
    SchedulerService,
    build_pipeline,
)
from tests.factories import ManualClock


def _counting_jobs(calls: Counter) -> list[ScheduledJob]:
    def job(name: str):
        async def run() -> dict[str, str]:
            calls[name] += 1
            return {"job": name}
        return run

    return [
        ScheduledJob(FETCH_JOB, job(FETCH_JOB), 3600),
        ScheduledJob(STATUS_JOB, job(STATUS_JOB), 300),
        ScheduledJob(BACKFILL_JOB, job(BACKFILL_JOB), None),
    ]


async def _stop(service: SchedulerService, task: asyncio.Task) -> None:
    service.request_shutdown()
    await asyncio.wait_for(task, timeout=5)


@pytest.mark.asyncio
async def test_every_job_runs_once_at_startup(settings: Settings) -> None:
    calls: Counter = Counter()
    clock = ManualClock()
    service = SchedulerService(_counting_jobs(calls), clock=clock, settings=settings)
    task = asyncio.create_task(service.run())

    await clock.advance(0)

    assert calls == Counter({FETCH_JOB: 1, STATUS_JOB: 1, BACKFILL_JOB: 1})
    await _stop(service, task)


@pytest.mark.asyncio
async def test_cadences_over_one_hour(settings: Settings) -> None:
    calls: Counter = Counter()
    clock = ManualClock()
    service = SchedulerService(_counting_jobs(calls), clock=clock, settings=settings)
    task = asyncio.create_task(service.run())

    await clock.advance(0)
    await clock.advance(3600)

    # Startup run plus one per elapsed interval; backfill never repeats.
    assert calls[FETCH_JOB] == 2
    assert calls[STATUS_JOB] == 13
    assert calls[BACKFILL_JOB] == 1
    assert set(service.last_runs) == {FETCH_JOB, STATUS_JOB, BACKFILL_JOB}
    await _stop(service, task)


@pytest.mark.asyncio
async def test_busy_job_skips_the_tick(settings: Settings) -> None:
    release = asyncio.Event()
    calls = 0

    async def slow_fetch() -> None:
        nonlocal calls
        calls += 1
        await release.wait()

    clock = ManualClock()
    service = SchedulerService(
        [ScheduledJob(FETCH_JOB, slow_fetch, 300)], clock=clock, settings=settings
    )
    task = asyncio.create_task(service.run())

    await clock.advance(0)
    await clock.advance(300)
    assert calls == 1

    release.set()
    await clock.advance(300)
    assert calls == 2

    await _stop(service, task)


@pytest.mark.asyncio
async def test_run_once_reports_skip_while_running(settings: Settings) -> None:
    release = asyncio.Event()

    async def blocked() -> None:
        await release.wait()

    job = ScheduledJob(STATUS_JOB, blocked, 300)
    service = SchedulerService([job], clock=ManualClock(), settings=settings)

    first = asyncio.create_task(service.run_once(STATUS_JOB))
    await asyncio.sleep(0)
    assert await service.run_once(STATUS_JOB) is False

    release.set()
    assert await first is True


@pytest.mark.asyncio
async def test_failing_job_keeps_its_schedule(settings: Settings) -> None:
    attempts = 0

    async def broken() -> None:
        nonlocal attempts
        attempts += 1
        raise RuntimeError("upstream exploded")

    clock = ManualClock()
    service = SchedulerService(
        [ScheduledJob(STATUS_JOB, broken, 300)], clock=clock, settings=settings
    )
    task = asyncio.create_task(service.run())

    await clock.advance(0)
    await clock.advance(600)

    assert attempts == 3
    assert STATUS_JOB not in service.last_runs
    await _stop(service, task)


@pytest.mark.asyncio
async def test_redis_lease_held_elsewhere_skips_run(settings: Settings) -> None:
    redis = MagicMock()
    redis.try_acquire_lease = AsyncMock(return_value=False)
    redis.release_lease = AsyncMock(return_value=False)
    body = AsyncMock()
    service = SchedulerService(
        [ScheduledJob(FETCH_JOB, body, 3600)], clock=ManualClock(), redis=redis, settings=settings
    )

    assert await service.run_once(FETCH_JOB) is False
    body.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_lease_is_released_and_run_marked(settings: Settings) -> None:
    redis = MagicMock()
    redis.try_acquire_lease = AsyncMock(return_value=True)
    redis.release_lease = AsyncMock(return_value=True)
    redis.mark_job_run = AsyncMock()
    body = AsyncMock(return_value={"fetched": 0})
    clock = ManualClock()
    service = SchedulerService(
        [ScheduledJob(FETCH_JOB, body, 3600)], clock=clock, redis=redis, settings=settings
    )

    assert await service.run_once(FETCH_JOB) is True

    body.assert_awaited_once()
    redis.release_lease.assert_awaited_once()
    redis.mark_job_run.assert_awaited_once_with(FETCH_JOB, clock.now().isoformat())
    assert service.last_results[FETCH_JOB] == {"fetched": 0}



class _LeaseStore:
    """In-memory stand-in for the Redis lease keys, expiring on wall time."""

    def __init__(self) -> None:
        self._leases: dict[str, tuple[str, float]] = {}

    def _holder(self, job: str):
        entry = self._leases.get(job)
        if entry and entry[1] > time.monotonic():
            return entry[0]
        return None

    async def try_acquire_lease(self, job: str, owner: str, ttl_s: int) -> bool:
        if self._holder(job) is not None:
            return False
        self._leases[job] = (owner, time.monotonic() + ttl_s)
        return True

    async def renew_lease(self, job: str, owner: str, ttl_s: int) -> bool:
        if self._holder(job) != owner:
            return False
        self._leases[job] = (owner, time.monotonic() + ttl_s)
        return True

    async def release_lease(self, job: str, owner: str) -> bool:
        if self._holder(job) != owner:
            return False
        del self._leases[job]
        return True

    async def mark_job_run(self, job: str, iso_ts: str) -> None:
        return None


@pytest.mark.asyncio
async def test_lease_is_renewed_while_a_long_run_outlasts_its_ttl(settings: Settings) -> None:
    short = settings.model_copy(update={"job_lease_ttl_s": 1})
    store = _LeaseStore()
    running = 0
    peak = 0

    def job(hold_s: float):
        async def run() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(hold_s)
            running -= 1
        return run

    replica_a = SchedulerService(
        [ScheduledJob(BACKFILL_JOB, job(1.6), None)], clock=ManualClock(), redis=store, settings=short
    )
    replica_b = SchedulerService(
        [ScheduledJob(BACKFILL_JOB, job(0), None)], clock=ManualClock(), redis=store, settings=short
    )

    first = asyncio.create_task(replica_a.run_once(BACKFILL_JOB))
    await asyncio.sleep(1.3)

    assert await replica_b.run_once(BACKFILL_JOB) is False
    assert await first is True
    assert peak == 1
    # Released on completion, so the next replica gets it straight away.
    assert await replica_b.run_once(BACKFILL_JOB) is True


@pytest.mark.asyncio
async def test_lost_lease_stops_renewing(settings: Settings) -> None:
    short = settings.model_copy(update={"job_lease_ttl_s": 1})
    redis = MagicMock()
    redis.try_acquire_lease = AsyncMock(return_value=True)
    redis.renew_lease = AsyncMock(return_value=False)
    redis.release_lease = AsyncMock(return_value=False)
    redis.mark_job_run = AsyncMock()

    async def slow() -> None:
        await asyncio.sleep(0.8)

    service = SchedulerService(
        [ScheduledJob(FETCH_JOB, slow, 3600)], clock=ManualClock(), redis=redis, settings=short
    )

    assert await service.run_once(FETCH_JOB) is True
    redis.renew_lease.assert_awaited_once()


def test_pipeline_jobs_and_cadences(settings: Settings) -> None:
    pipeline = build_pipeline(MagicMock(), settings)
    cadence = {job.name: job.interval_s for job in pipeline.jobs}
    assert cadence == {FETCH_JOB: 3600.0, STATUS_JOB: 300.0, BACKFILL_JOB: None}
    assert pipeline.finder.trusted_platforms == set(pipeline.registry.solution_channels())


# ── Startup connection ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_connect_retries_with_backoff_then_succeeds() -> None:
    connect = AsyncMock(side_effect=[OSError("refused"), OSError("refused"), None])
    sleeps: list[float] = []

    async def record(seconds: float) -> None:
        sleeps.append(seconds)

    await connect_with_retry(connect, "Database", sleep=record)

    assert connect.await_count == 3
    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_connect_gives_up_after_last_attempt() -> None:
    connect = AsyncMock(side_effect=OSError("refused"))
    sleeps: list[float] = []

    async def record(seconds: float) -> None:
        sleeps.append(seconds)

    with pytest.raises(OSError):
        await connect_with_retry(connect, "Database", attempts=10, sleep=record)

    assert connect.await_count == 10
    assert len(sleeps) == 9


@pytest.mark.asyncio
async def test_unreachable_redis_disables_leases(settings: Settings, monkeypatch) -> None:
    connect = AsyncMock(side_effect=ConnectionError("refused"))
    monkeypatch.setattr(RedisManager, "connect", connect)

    redis = await connect_optional_redis(settings.model_copy(update={"redis_url": "redis://cache:6379/0"}))

    assert redis is None
    connect.assert_awaited_once()


@pytest.mark.asyncio
async def test_no_redis_url_skips_connect(settings: Settings, monkeypatch) -> None:
    connect = AsyncMock()
    monkeypatch.setattr(RedisManager, "connect", connect)

    assert await connect_optional_redis(settings) is None
    connect.assert_not_awaited()
