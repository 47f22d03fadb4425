"""
Google Calendar client: inserts one reminder event per exported contest.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.config import Settings, get_settings
from shared.models.domain import Contest, OAuthCredential
from shared.utils.clock import to_rfc3339
from shared.utils.http_client import UpstreamHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# Popups one hour and one day before the start.
REMINDER_MINUTES = (60, 1440)


class CalendarError(Exception):
    """The calendar API did not accept the event."""


def build_event(contest: Contest) -> dict[str, Any]:
    return {
        "summary": contest.name,
        "description": f"A new coding contest is here! Visit the contest page: {contest.url}",
        "start": {"dateTime": to_rfc3339(contest.start_time)},
        "end": {"dateTime": to_rfc3339(contest.end_time)},
        "reminders": {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": m} for m in REMINDER_MINUTES],
        },
    }


class CalendarClient:
    def __init__(
        self,
        http_client: Optional[UpstreamHTTPClient] = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._http = http_client or UpstreamHTTPClient(
            "google_calendar", base_url=settings.google_calendar_url, max_retries=1, settings=settings
        )

    async def start(self) -> None:
        await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def create_event(self, credential: OAuthCredential, contest: Contest) -> str:
        """Insert the event on the primary calendar and return its htmlLink."""
        try:
            resp = await self._http.post(
                "/calendars/primary/events",
                json=build_event(contest),
                headers={"Authorization": f"Bearer {credential.access_token}"},
            )
            link = resp.json()["htmlLink"]
        except Exception as exc:
            logger.error("calendar_event_failed", contest=contest.name, error=str(exc))
            raise CalendarError(str(exc)) from exc

        logger.info("calendar_event_created", contest=contest.name)
        return link
