"""
Codeforces adapter.
Reads the public contest list and keeps contests that have not started yet.
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

CODEFORCES_BASE = "https://codeforces.com"
# Codeforces phase for contests that are announced but not running yet
PHASE_BEFORE = "BEFORE"


class CodeforcesAdapter(BaseAdapter):
    platform = Platform.CODEFORCES

    def __init__(
        self,
        http_client: Optional[UpstreamHTTPClient] = None,
        solution_channel_id: Optional[str] = None,
        timeout_s: Optional[float] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__(
            http_client or UpstreamHTTPClient("codeforces", base_url=CODEFORCES_BASE, settings=settings),
            solution_channel_id=solution_channel_id,
            timeout_s=timeout_s,
            clock=clock,
        )

    async def _fetch(self) -> list[Contest]:
        resp = await self._http.get("/api/contest.list")
        data = resp.json()
        if data.get("status") != "OK":
            raise AdapterError(f"codeforces status={data.get('status')!r}: {data.get('comment', '')}")
        upcoming = [c for c in data.get("result", []) if c.get("phase") == PHASE_BEFORE]
        return self._map_items(upcoming, self._map_contest)

    def _map_contest(self, item: dict[str, Any]) -> Contest:
        start = datetime.fromtimestamp(int(item["startTimeSeconds"]), tz=timezone.utc)
        end = start + timedelta(seconds=int(item["durationSeconds"]))
        return self._build_contest(
            name=item["name"],
            start=start,
            end=end,
            url=f"{CODEFORCES_BASE}/contests/{item['id']}",
        )
