"""
Scheduler service for Contest Tracker.
Runs the named pipeline jobs once at startup and then on fixed cadences:

- fetch_contests: every fetch_interval_s (hourly by default)
- update_statuses: every status_interval_s (5 minutes by default)
- backfill_solutions: once at startup only

A job never overlaps itself. Within a process a per-job lock is checked
before each run and a busy tick is skipped. Across processes an optional
Redis lease does the same, renewed for as long as the run lasts.
"""
from __future__ import annotations

import asyncio
import signal
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from shared.config import Settings, get_settings
from shared.repositories import ContestRepository
from shared.utils.clock import Clock
from shared.utils.database import DatabaseManager, connect_with_retry
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import JOB_DURATION, JOB_RUNS, atrack_latency, start_metrics_server
from shared.utils.redis_manager import RedisManager, connect_optional_redis

from ingest.adapters.registry import AdapterRegistry, build_adapter_registry
from ingest.service import ContestIngestService
from ingest.solutions import SolutionFinder, build_solution_finder
from scheduler.engine.backfill import SolutionBackfill
from scheduler.engine.lifecycle import StatusLifecycleEngine

logger = get_logger(__name__)

FETCH_JOB = "fetch_contests"
STATUS_JOB = "update_statuses"
BACKFILL_JOB = "backfill_solutions"


@dataclass
class ScheduledJob:
    """A named unit of work. interval_s=None means startup only."""

    name: str
    func: Callable[[], Awaitable[Any]]
    interval_s: Optional[float] = None
    run_at_startup: bool = True
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


class SchedulerService:
    """Drives ScheduledJobs against an injectable clock."""

    def __init__(
        self,
        jobs: list[ScheduledJob],
        clock: Clock | None = None,
        redis: RedisManager | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._jobs = {job.name: job for job in jobs}
        self._clock = clock or Clock()
        self._redis = redis
        self._settings = settings or get_settings()
        self._instance_id = self._settings.instance_id or str(uuid.uuid4())[:8]
        self._shutdown = asyncio.Event()
        self._inflight: set[asyncio.Task[bool]] = set()
        self._last_runs: dict[str, str] = {}
        self._last_results: dict[str, Any] = {}

    @property
    def last_runs(self) -> dict[str, str]:
        """Job name → ISO timestamp of the last completed run in this process."""
        return dict(self._last_runs)

    @property
    def last_results(self) -> dict[str, Any]:
        return dict(self._last_results)

    # ── Single run ──────────────────────────────────────────────────────

    async def run_once(self, name: str) -> bool:
        """
        Run a job now unless it is already running.

        Returns:
            True if the job body ran (successfully or not), False if the
            run was skipped because another run holds the job.
        """
        job = self._jobs[name]
        if job.lock.locked():
            JOB_RUNS.labels(job=name, outcome="skipped").inc()
            logger.warning("job_overlap_skipped", job=name)
            return False

        async with job.lock:
            if not await self._acquire_lease(name):
                JOB_RUNS.labels(job=name, outcome="skipped").inc()
                logger.info("job_lease_held_elsewhere", job=name)
                return False
            renewer = self._start_lease_renewal(name)
            try:
                await self._execute(job)
            finally:
                if renewer is not None:
                    renewer.cancel()
                    await asyncio.gather(renewer, return_exceptions=True)
                await self._release_lease(name)
        return True

    async def _execute(self, job: ScheduledJob) -> None:
        start = time.perf_counter()
        logger.info("job_started", job=job.name)
        try:
            async with atrack_latency(JOB_DURATION, job=job.name):
                result = await job.func()
        except Exception as exc:
            JOB_RUNS.labels(job=job.name, outcome="error").inc()
            logger.error("job_failed", job=job.name, error=str(exc), exc_info=True)
            return

        finished_at = self._clock.now().isoformat()
        self._last_runs[job.name] = finished_at
        self._last_results[job.name] = result
        JOB_RUNS.labels(job=job.name, outcome="ok").inc()
        logger.info(
            "job_finished",
            job=job.name,
            duration_s=round(time.perf_counter() - start, 3),
        )
        if self._redis is not None:
            try:
                await self._redis.mark_job_run(job.name, finished_at)
            except Exception as exc:
                logger.warning("job_marker_failed", job=job.name, error=str(exc))

    async def _acquire_lease(self, name: str) -> bool:
        if self._redis is None:
            return True
        try:
            return await self._redis.try_acquire_lease(
                name, self._instance_id, self._settings.job_lease_ttl_s
            )
        except Exception as exc:
            # Without Redis the in-process lock still prevents self-overlap.
            logger.warning("job_lease_unavailable", job=name, error=str(exc))
            return True

    def _start_lease_renewal(self, name: str) -> Optional[asyncio.Task[None]]:
        if self._redis is None:
            return None
        return asyncio.create_task(self._renew_lease_loop(name), name=f"lease:{name}")

    async def _renew_lease_loop(self, name: str) -> None:
        """Keep the lease alive while a run outlasts its TTL. Uses wall time, like Redis."""
        ttl_s = self._settings.job_lease_ttl_s
        while True:
            await asyncio.sleep(ttl_s / 3)
            try:
                renewed = await self._redis.renew_lease(name, self._instance_id, ttl_s)
            except Exception as exc:
                logger.warning("job_lease_renew_failed", job=name, error=str(exc))
                continue
            if not renewed:
                logger.warning("job_lease_lost", job=name, instance_id=self._instance_id)
                return

    async def _release_lease(self, name: str) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.release_lease(name, self._instance_id)
        except Exception as exc:
            logger.warning("job_lease_release_failed", job=name, error=str(exc))

    # ── Cadence ─────────────────────────────────────────────────────────

    def trigger(self, name: str) -> asyncio.Task[bool]:
        """Start a run in the background; ticks never wait on a busy job."""
        task = asyncio.create_task(self.run_once(name), name=f"job:{name}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _job_loop(self, job: ScheduledJob) -> None:
        if job.run_at_startup:
            self.trigger(job.name)
        if job.interval_s is None:
            return
        while not self._shutdown.is_set():
            await self._clock.sleep(job.interval_s)
            if self._shutdown.is_set():
                break
            self.trigger(job.name)

    async def run(self) -> None:
        """Run every job loop until request_shutdown(), then drain in-flight runs."""
        logger.info(
            "scheduler_started",
            instance_id=self._instance_id,
            jobs={name: job.interval_s for name, job in self._jobs.items()},
        )
        loops = [
            asyncio.create_task(self._job_loop(job), name=f"loop:{job.name}")
            for job in self._jobs.values()
        ]
        try:
            await self._shutdown.wait()
        finally:
            for loop_task in loops:
                loop_task.cancel()
            await asyncio.gather(*loops, return_exceptions=True)
            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)
            logger.info("scheduler_stopped")

    def request_shutdown(self) -> None:
        self._shutdown.set()


@dataclass
class Pipeline:
    """Wired pipeline components plus the jobs that drive them."""

    registry: AdapterRegistry
    finder: SolutionFinder
    jobs: list[ScheduledJob]

    async def start(self) -> None:
        await self.registry.start()
        await self.finder.start()

    async def close(self) -> None:
        await self.registry.close()
        await self.finder.close()


def build_pipeline(
    db: DatabaseManager,
    settings: Settings | None = None,
    clock: Clock | None = None,
) -> Pipeline:
    """Wire adapters, store, lifecycle engine and backfill into named jobs."""
    settings = settings or get_settings()
    clock = clock or Clock()

    contests = ContestRepository(db)
    registry = build_adapter_registry(settings, clock)
    finder = build_solution_finder(registry.solution_channels(), settings)

    ingest = ContestIngestService(registry, contests)
    lifecycle = StatusLifecycleEngine(contests, finder, clock)
    backfill = SolutionBackfill(contests, finder)

    jobs = [
        ScheduledJob(FETCH_JOB, ingest.fetch_and_store, settings.fetch_interval_s),
        ScheduledJob(STATUS_JOB, lifecycle.run, settings.status_interval_s),
        ScheduledJob(BACKFILL_JOB, backfill.run, None),
    ]
    return Pipeline(registry=registry, finder=finder, jobs=jobs)


async def main() -> None:
    """Standalone worker entrypoint."""
    settings = get_settings()
    setup_logging("worker")
    start_metrics_server()

    db = DatabaseManager(settings)
    await connect_with_retry(db.connect, "Database")

    redis = await connect_optional_redis(settings)

    pipeline = build_pipeline(db, settings)
    await pipeline.start()
    service = SchedulerService(pipeline.jobs, redis=redis, settings=settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, service.request_shutdown)

    try:
        await service.run()
    finally:
        await pipeline.close()
        await db.disconnect()
        if redis is not None:
            await redis.disconnect()
        logger.info("worker_service_stopped")


if __name__ == "__main__":
    asyncio.run(main())
