"""
Calendar export endpoint.

POST /api/calendar-event  Put a contest on the viewer's Google Calendar.
"""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from shared.models.domain import CalendarEventRequest
from shared.repositories import ContestRepository, UserRepository
from shared.utils.logging import get_logger

from api.calendar import CalendarClient, CalendarError
from api.credentials import CredentialProvider, ReauthenticationRequired
from api.dependencies import (
    get_calendar_client,
    get_contest_repository,
    get_credential_provider,
    get_user_repository,
    get_viewer_id,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["calendar"])


@router.post("/calendar-event")
async def create_calendar_event(
    body: CalendarEventRequest,
    viewer_id: Optional[uuid.UUID] = Depends(get_viewer_id),
    contests: ContestRepository = Depends(get_contest_repository),
    users: UserRepository = Depends(get_user_repository),
    credentials: CredentialProvider = Depends(get_credential_provider),
    calendar: CalendarClient = Depends(get_calendar_client),
) -> JSONResponse:
    if viewer_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated.")
    user = await users.get(viewer_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated.")

    contest = await contests.get(body.contest_id)
    if contest is None:
        raise HTTPException(status_code=404, detail="Contest not found")

    try:
        credential = await credentials.get_valid_credential(user)
    except ReauthenticationRequired as exc:
        logger.info("calendar_reauthentication_required", user_id=str(viewer_id))
        return JSONResponse(
            status_code=401,
            content={"error": "reauthentication_required", "message": exc.reason},
        )

    try:
        link = await calendar.create_event(credential, contest)
    except CalendarError:
        raise HTTPException(status_code=502, detail="Failed to create calendar event.")

    return JSONResponse(content={"message": "Event created successfully!", "url": link})
