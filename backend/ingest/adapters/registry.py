"""
Adapter registry.
Holds the configured platform adapters, runs them concurrently with
per-adapter failure isolation, and exposes each adapter's trusted
solution channel.
"""
from __future__ import annotations

import asyncio
from shared.config import Settings, get_settings
from shared.models.enums import Platform
from shared.utils.clock import Clock
from shared.utils.logging import get_logger

from ingest.adapters.base import AdapterResult, BaseAdapter
from ingest.adapters.codeforces import CodeforcesAdapter
from ingest.adapters.hackerearth import HackerEarthAdapter
from ingest.adapters.leetcode import LeetCodeAdapter
from ingest.adapters.topcoder import TopCoderAdapter

logger = get_logger(__name__)

ADAPTER_CLASSES: dict[Platform, type[BaseAdapter]] = {
    Platform.CODEFORCES: CodeforcesAdapter,
    Platform.LEETCODE: LeetCodeAdapter,
    Platform.HACKEREARTH: HackerEarthAdapter,
    Platform.TOPCODER: TopCoderAdapter,
}


class AdapterRegistry:
    """Manages adapter instances and fans a fetch cycle out across them."""

    def __init__(self, adapters: dict[Platform, BaseAdapter]) -> None:
        self._adapters = adapters

    @property
    def adapters(self) -> dict[Platform, BaseAdapter]:
        return self._adapters

    def solution_channels(self) -> dict[Platform, str]:
        """Platform → trusted channel id, for adapters that declare one."""
        return {
            platform: adapter.solution_channel_id
            for platform, adapter in self._adapters.items()
            if adapter.solution_channel_id
        }

    async def start(self) -> None:
        for adapter in self._adapters.values():
            await adapter.start()

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()

    async def fetch_all(self) -> list[AdapterResult]:
        """
        Run every adapter concurrently and wait for all of them.

        Adapters never raise, but anything unexpected that escapes one is
        still turned into a failed result for that platform only.
        """
        platforms = list(self._adapters)
        outcomes = await asyncio.gather(
            *(self._adapters[p].fetch() for p in platforms),
            return_exceptions=True,
        )

        results: list[AdapterResult] = []
        for platform, outcome in zip(platforms, outcomes):
            if isinstance(outcome, AdapterResult):
                results.append(outcome)
                continue
            logger.error("adapter_crashed", platform=platform.value, error=str(outcome))
            results.append(
                AdapterResult(platform, success=False, latency_ms=0.0, error=str(outcome))
            )
        return results


def build_adapter_registry(
    settings: Settings | None = None, clock: Clock | None = None
) -> AdapterRegistry:
    """Construct the registry from the enabled platforms in settings."""
    settings = settings or get_settings()
    trusted = set(settings.solution_channel_platforms)
    adapters: dict[Platform, BaseAdapter] = {}

    for name in settings.enabled_platforms:
        try:
            platform = Platform(name)
        except ValueError:
            logger.warning("unknown_platform_configured", platform=name)
            continue
        channel = settings.solution_channel_id if name in trusted else None
        adapters[platform] = ADAPTER_CLASSES[platform](
            solution_channel_id=channel,
            timeout_s=settings.adapter_deadline_s,
            clock=clock,
            settings=settings,
        )

    return AdapterRegistry(adapters)
