"""
Solution video lookup via the YouTube Data API v3 search endpoint.

For each finished contest at most one video is proposed: the newest video
matching "<contest name> solution editorial" published after the contest
ended. Platforms with a trusted solutions channel are searched only inside
that channel.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import httpx

from shared.config import Settings, get_settings
from shared.models.enums import Platform
from shared.utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from shared.utils.clock import to_rfc3339
from shared.utils.http_client import UpstreamHTTPClient
from shared.utils.logging import get_logger
from shared.utils.metrics import SOLUTION_LOOKUPS

logger = get_logger(__name__)


def _youtube_error(exc: httpx.HTTPStatusError) -> str:
    try:
        return exc.response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return str(exc)


class SolutionFinder:
    """Finds a solution video id for a finished contest. Never raises."""

    def __init__(
        self,
        http_client: UpstreamHTTPClient,
        api_key: str,
        channels: dict[Platform, str],
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self._channels = dict(channels)
        self._breaker = breaker or CircuitBreaker("youtube")

    @property
    def trusted_platforms(self) -> set[Platform]:
        return set(self._channels)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    def build_search_params(
        self, contest_name: str, contest_end_time: datetime, platform: Platform
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "part": "snippet",
            "q": f'"{contest_name}" solution editorial',
            "key": self._api_key,
            "maxResults": 1,
            "type": "video",
            "order": "date",
            "publishedAfter": to_rfc3339(contest_end_time),
        }
        channel_id = self._channels.get(platform)
        if channel_id:
            params["channelId"] = channel_id
        return params

    async def find(
        self, contest_name: str, contest_end_time: datetime, platform: Platform
    ) -> Optional[str]:
        """
        Return the id of the best matching video, or None when there is no
        match yet, search is not configured, or the upstream call fails.
        """
        if not self._api_key:
            logger.debug("solution_search_not_configured", contest=contest_name)
            return None

        params = self.build_search_params(contest_name, contest_end_time, platform)
        logger.info(
            "solution_search",
            contest=contest_name,
            platform=platform.value,
            channel_restricted="channelId" in params,
        )

        try:
            resp = await self._breaker.call(self._http.get, "/search", params=params)
            items = resp.json().get("items") or []
            video_id = items[0]["id"]["videoId"] if items else None
        except CircuitBreakerOpen as exc:
            SOLUTION_LOOKUPS.labels(platform=platform.value, outcome="circuit_open").inc()
            logger.warning("solution_search_circuit_open", retry_after=round(exc.retry_after, 1))
            return None
        except httpx.HTTPStatusError as exc:
            SOLUTION_LOOKUPS.labels(platform=platform.value, outcome="error").inc()
            logger.error("solution_search_failed", contest=contest_name, error=_youtube_error(exc))
            return None
        except Exception as exc:
            SOLUTION_LOOKUPS.labels(platform=platform.value, outcome="error").inc()
            logger.error("solution_search_failed", contest=contest_name, error=str(exc))
            return None

        if not video_id:
            SOLUTION_LOOKUPS.labels(platform=platform.value, outcome="miss").inc()
            logger.info("solution_not_found_yet", contest=contest_name)
            return None

        SOLUTION_LOOKUPS.labels(platform=platform.value, outcome="hit").inc()
        logger.info("solution_found", contest=contest_name, video_id=video_id)
        return video_id


def build_solution_finder(
    channels: dict[Platform, str], settings: Settings | None = None
) -> SolutionFinder:
    settings = settings or get_settings()
    return SolutionFinder(
        http_client=UpstreamHTTPClient("youtube", base_url=settings.youtube_api_base, settings=settings),
        api_key=settings.youtube_api_key,
        channels=channels,
        breaker=CircuitBreaker(
            "youtube",
            failure_threshold=settings.solution_breaker_threshold,
            recovery_timeout_s=settings.solution_breaker_recovery_s,
        ),
    )
