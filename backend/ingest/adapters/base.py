"""
Abstract base class for all contest platform adapters.
Defines the contract that every upstream connector must implement.
"""
from __future__ import annotations

import abc
import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from shared.config import get_settings
from shared.models.domain import Contest
from shared.models.enums import ContestStatus, Platform
from shared.utils.clock import Clock
from shared.utils.duration import format_duration
from shared.utils.http_client import UpstreamHTTPClient
from shared.utils.logging import get_logger
from shared.utils.metrics import ADAPTER_FETCHES

logger = get_logger(__name__)


class AdapterError(Exception):
    """Upstream answered, but not with the shape the adapter expects."""


class AdapterResult:
    """Outcome of one adapter fetch: either contests or an error, never both."""

    def __init__(
        self,
        platform: Platform,
        success: bool,
        latency_ms: float,
        contests: Optional[list[Contest]] = None,
        error: Optional[str] = None,
    ) -> None:
        self.platform = platform
        self.success = success
        self.latency_ms = latency_ms
        self.contests = contests or []
        self.error = error

    def __repr__(self) -> str:
        state = f"{len(self.contests)} contests" if self.success else f"error={self.error!r}"
        return f"<AdapterResult {self.platform.value} {state}>"


def parse_utc(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class BaseAdapter(abc.ABC):
    """
    Abstract base class for contest platform adapters.

    Subclasses implement ``_fetch``; the base class adds the timeout,
    failure isolation, timing and metrics. ``fetch`` never raises.

    ``solution_channel_id`` is the trusted video channel for contests of this
    platform, or None when solution search should not be channel-restricted.
    """

    platform: Platform

    def __init__(
        self,
        http_client: UpstreamHTTPClient,
        solution_channel_id: Optional[str] = None,
        timeout_s: Optional[float] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._http = http_client
        self._solution_channel_id = solution_channel_id or None
        self._timeout_s = timeout_s or get_settings().adapter_deadline_s
        self._clock = clock or Clock()

    @property
    def solution_channel_id(self) -> Optional[str]:
        return self._solution_channel_id

    async def start(self) -> None:
        """Initialize the adapter HTTP client."""
        await self._http.start()

    async def close(self) -> None:
        """Shutdown the adapter HTTP client."""
        await self._http.close()

    async def fetch(self) -> AdapterResult:
        """Fetch upcoming contests, bounded by the adapter timeout."""
        start = time.perf_counter()
        try:
            contests = await asyncio.wait_for(self._fetch(), timeout=self._timeout_s)
        except Exception as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            error = str(exc) or exc.__class__.__name__
            ADAPTER_FETCHES.labels(platform=self.platform.value, outcome="error").inc()
            logger.error(
                "adapter_fetch_failed",
                platform=self.platform.value,
                error=error,
                error_type=exc.__class__.__name__,
            )
            return AdapterResult(self.platform, success=False, latency_ms=latency_ms, error=error)

        latency_ms = (time.perf_counter() - start) * 1000
        ADAPTER_FETCHES.labels(platform=self.platform.value, outcome="ok").inc()
        logger.info(
            "adapter_fetch_succeeded",
            platform=self.platform.value,
            contests=len(contests),
            latency_ms=round(latency_ms, 2),
        )
        return AdapterResult(self.platform, success=True, latency_ms=latency_ms, contests=contests)

    # ── Helpers for subclasses ──────────────────────────────────────────

    def _build_contest(self, name: str, start: datetime, end: datetime, url: str) -> Contest:
        return Contest(
            name=name,
            platform=self.platform,
            duration=format_duration((end - start).total_seconds()),
            start_time=start,
            end_time=end,
            status=ContestStatus.UPCOMING,
            url=url,
        )

    def _map_items(
        self, items: Iterable[dict[str, Any]], mapper: Callable[[dict[str, Any]], Contest]
    ) -> list[Contest]:
        """Map raw items, skipping (and logging) any single malformed one."""
        contests: list[Contest] = []
        for item in items:
            try:
                contests.append(mapper(item))
            except (KeyError, TypeError, ValueError, ValidationError) as exc:
                logger.warning(
                    "adapter_item_skipped",
                    platform=self.platform.value,
                    item=str(item)[:200],
                    error=str(exc),
                )
        return contests

    # ── Abstract methods ────────────────────────────────────────────────
    @abc.abstractmethod
    async def _fetch(self) -> list[Contest]:
        """
        Platform-specific fetch + mapping of not-yet-started contests.
        May raise; ``fetch`` turns any exception into a failed AdapterResult.
        """
        ...
