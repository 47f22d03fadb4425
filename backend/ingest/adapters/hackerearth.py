"""
HackerEarth adapter.
Uses the events feed behind the HackerEarth browser extension.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.config import Settings
from shared.models.domain import Contest
from shared.models.enums import Platform
from shared.utils.clock import Clock
from shared.utils.http_client import UpstreamHTTPClient

from ingest.adapters.base import AdapterError, BaseAdapter, parse_utc

HACKEREARTH_BASE = "https://www.hackerearth.com"
STATUS_UPCOMING = "UPCOMING"


class HackerEarthAdapter(BaseAdapter):
    platform = Platform.HACKEREARTH

    def __init__(
        self,
        http_client: Optional[UpstreamHTTPClient] = None,
        solution_channel_id: Optional[str] = None,
        timeout_s: Optional[float] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__(
            http_client or UpstreamHTTPClient("hackerearth", base_url=HACKEREARTH_BASE, settings=settings),
            solution_channel_id=solution_channel_id,
            timeout_s=timeout_s,
            clock=clock,
        )

    async def _fetch(self) -> list[Contest]:
        resp = await self._http.get("/chrome-extension/events/")
        events = resp.json().get("response")
        if not isinstance(events, list):
            raise AdapterError("hackerearth payload has no 'response' list")
        upcoming = [e for e in events if e.get("status") == STATUS_UPCOMING]
        return self._map_items(upcoming, self._map_contest)

    def _map_contest(self, item: dict[str, Any]) -> Contest:
        return self._build_contest(
            name=item["title"],
            start=parse_utc(item["start_utc_tz"]),
            end=parse_utc(item["end_utc_tz"]),
            url=item["url"],
        )
