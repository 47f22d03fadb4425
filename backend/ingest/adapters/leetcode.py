"""
LeetCode adapter.
The GraphQL ``upcomingContests`` query already returns only future contests.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from shared.config import Settings
from shared.models.domain import Contest
from shared.models.enums import Platform
from shared.utils.clock import Clock
from shared.utils.http_client import UpstreamHTTPClient

from ingest.adapters.base import AdapterError, BaseAdapter

LEETCODE_BASE = "https://leetcode.com"
UPCOMING_CONTESTS_QUERY = "query { upcomingContests { title titleSlug startTime duration } }"


class LeetCodeAdapter(BaseAdapter):
    platform = Platform.LEETCODE

    def __init__(
        self,
        http_client: Optional[UpstreamHTTPClient] = None,
        solution_channel_id: Optional[str] = None,
        timeout_s: Optional[float] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__(
            http_client
            or UpstreamHTTPClient(
                "leetcode",
                base_url=LEETCODE_BASE,
                headers={"Content-Type": "application/json", "Referer": f"{LEETCODE_BASE}/contest/"},
                settings=settings,
            ),
            solution_channel_id=solution_channel_id,
            timeout_s=timeout_s,
            clock=clock,
        )

    async def _fetch(self) -> list[Contest]:
        resp = await self._http.post("/graphql", json={"query": UPCOMING_CONTESTS_QUERY})
        payload = resp.json()
        data = payload.get("data")
        if not isinstance(data, dict):
            raise AdapterError(f"leetcode graphql errors: {payload.get('errors')}")
        return self._map_items(data.get("upcomingContests") or [], self._map_contest)

    def _map_contest(self, item: dict[str, Any]) -> Contest:
        start = datetime.fromtimestamp(int(item["startTime"]), tz=timezone.utc)
        end = start + timedelta(seconds=int(item["duration"]))
        return self._build_contest(
            name=item["title"],
            start=start,
            end=end,
            url=f"{LEETCODE_BASE}/contest/{item['titleSlug']}",
        )
