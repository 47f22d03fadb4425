"""
Redis connection manager for Contest Tracker.
Provides job leases so that worker replicas never run the same job at once,
and pipeline markers read by the status endpoint.
"""
from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
LEASE_KEY = "lease:job:{job}"
LAST_RUN_KEY = "pipeline:last_run:{job}"


def _fmt(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


class RedisManager:
    """Manages the async Redis connection pool and provides typed helpers."""

    # Extend the TTL only while we still hold the lease
    _RENEW_LEASE_SCRIPT = """
    if redis.call('get', KEYS[1]) == ARGV[1] then
        return redis.call('expire', KEYS[1], ARGV[2])
    end
    return 0
    """

    _RELEASE_LEASE_SCRIPT = """
    if redis.call('get', KEYS[1]) == ARGV[1] then
        return redis.call('del', KEYS[1])
    end
    return 0
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected")

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    # ── Job leases ──────────────────────────────────────────────────────
    async def try_acquire_lease(self, job: str, owner: str, ttl_s: int) -> bool:
        """Take the job lease with SET NX; False when another owner holds it."""
        key = _fmt(LEASE_KEY, job=job)
        return bool(await self.client.set(key, owner, nx=True, ex=ttl_s))

    async def renew_lease(self, job: str, owner: str, ttl_s: int) -> bool:
        """Push the lease expiry out by ttl_s; False when the lease was lost."""
        key = _fmt(LEASE_KEY, job=job)
        result = await self.client.eval(self._RENEW_LEASE_SCRIPT, 1, key, owner, str(ttl_s))
        return bool(result)

    async def release_lease(self, job: str, owner: str) -> bool:
        """Atomically release the lease only if we hold it."""
        key = _fmt(LEASE_KEY, job=job)
        result = await self.client.eval(self._RELEASE_LEASE_SCRIPT, 1, key, owner)
        return bool(result)

    # ── Pipeline markers ────────────────────────────────────────────────
    async def mark_job_run(self, job: str, iso_ts: str) -> None:
        await self.client.set(_fmt(LAST_RUN_KEY, job=job), iso_ts)

    async def get_last_job_run(self, job: str) -> Optional[str]:
        return await self.client.get(_fmt(LAST_RUN_KEY, job=job))


async def connect_optional_redis(settings: Settings | None = None) -> Optional[RedisManager]:
    """
    Connect to Redis when redis_url is configured.

    Redis only carries job leases and run markers, so an unreachable server
    is logged and the caller continues with None instead of failing startup.
    """
    settings = settings or get_settings()
    if not settings.redis_url:
        return None

    redis = RedisManager(settings)
    try:
        await redis.connect()
    except Exception as exc:
        logger.warning("redis_unavailable_leases_disabled", error=str(exc))
        await redis.disconnect()
        return None
    return redis
