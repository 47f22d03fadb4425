"""
Contest ingest: one fetch-and-store cycle.
Fans out to every platform adapter, then hands the combined batch to the
reconciliation store. The upsert only starts once every adapter is done.
"""
from __future__ import annotations

from typing import Any

from shared.repositories import ContestRepository
from shared.utils.logging import get_logger

from ingest.adapters.registry import AdapterRegistry

logger = get_logger(__name__)


class ContestIngestService:
    """Fetches upcoming contests from all platforms and upserts them."""

    def __init__(self, registry: AdapterRegistry, contests: ContestRepository) -> None:
        self._registry = registry
        self._contests = contests

    async def fetch_and_store(self) -> dict[str, Any]:
        """
        Run one fetch cycle.

        Returns:
            Summary with the number of contests fetched and written and the
            platforms that failed this cycle.
        """
        results = await self._registry.fetch_all()

        batch = []
        failed: list[str] = []
        for result in results:
            if result.success:
                batch.extend(result.contests)
            else:
                failed.append(result.platform.value)
                logger.warning(
                    "platform_skipped_this_cycle",
                    platform=result.platform.value,
                    error=result.error,
                )

        written = await self._contests.upsert_batch(batch) if batch else 0

        logger.info(
            "contests_fetched",
            fetched=len(batch),
            written=written,
            failed_platforms=failed,
        )
        return {"fetched": len(batch), "written": written, "failed_platforms": failed}
