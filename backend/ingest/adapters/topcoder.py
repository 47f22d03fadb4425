"""
TopCoder adapter.
The challenges API "Active" filter also returns running challenges, so
start dates are compared against the clock here.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.config import Settings
from shared.models.domain import Contest
from shared.models.enums import Platform
from shared.utils.clock import Clock
from shared.utils.http_client import UpstreamHTTPClient

from ingest.adapters.base import AdapterError, BaseAdapter, parse_utc

TOPCODER_API_BASE = "https://api.topcoder.com"
TOPCODER_SITE = "https://www.topcoder.com"
PAGE_SIZE = 50


class TopCoderAdapter(BaseAdapter):
    platform = Platform.TOPCODER

    def __init__(
        self,
        http_client: Optional[UpstreamHTTPClient] = None,
        solution_channel_id: Optional[str] = None,
        timeout_s: Optional[float] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__(
            http_client or UpstreamHTTPClient("topcoder", base_url=TOPCODER_API_BASE, settings=settings),
            solution_channel_id=solution_channel_id,
            timeout_s=timeout_s,
            clock=clock,
        )

    async def _fetch(self) -> list[Contest]:
        resp = await self._http.get(
            "/v5/challenges", params={"status": "Active", "perPage": PAGE_SIZE}
        )
        challenges = resp.json()
        if not isinstance(challenges, list):
            raise AdapterError("topcoder payload is not a list of challenges")
        contests = self._map_items(challenges, self._map_contest)
        now = self._clock.now()
        return [c for c in contests if c.start_time > now]

    def _map_contest(self, item: dict[str, Any]) -> Contest:
        return self._build_contest(
            name=item["name"],
            start=parse_utc(item["startDate"]),
            end=parse_utc(item["endDate"]),
            url=f"{TOPCODER_SITE}/challenges/{item['id']}",
        )
