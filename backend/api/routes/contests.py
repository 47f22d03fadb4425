"""
Contest REST endpoints.

GET   /api/contests       All contests with the viewer's saved flag, sorted by start.
PATCH /api/contests/{id}  Add or remove a bookmark for the signed-in viewer.
"""
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException

from shared.config import Settings, get_settings
from shared.models.domain import BookmarkUpdate, ContestView
from shared.repositories import ContestRepository, UserRepository
from shared.utils.clock import format_display_time
from shared.utils.logging import get_logger

from api.dependencies import get_contest_repository, get_user_repository, get_viewer_id

logger = get_logger(__name__)
router = APIRouter(prefix="/api/contests", tags=["contests"])


@router.get("")
async def list_contests(
    viewer_id: Optional[uuid.UUID] = Depends(get_viewer_id),
    contests: ContestRepository = Depends(get_contest_repository),
    users: UserRepository = Depends(get_user_repository),
    settings: Settings = Depends(get_settings),
) -> list[dict[str, Any]]:
    """
    List every stored contest.

    Anonymous viewers get ``saved: false`` everywhere. Start times are
    also rendered in the configured display timezone.
    """
    saved_ids = await users.saved_contest_ids(viewer_id) if viewer_id else set()
    rows = await contests.find_all()

    views = [
        ContestView(
            **contest.model_dump(),
            saved=contest.id in saved_ids,
            display_start_time=format_display_time(contest.start_time, settings.display_timezone),
        )
        for contest in rows
    ]
    views.sort(key=lambda v: v.start_time)
    return [v.model_dump(mode="json", by_alias=True) for v in views]


@router.patch("/{contest_id}")
async def update_bookmark(
    contest_id: uuid.UUID,
    body: BookmarkUpdate,
    viewer_id: Optional[uuid.UUID] = Depends(get_viewer_id),
    contests: ContestRepository = Depends(get_contest_repository),
    users: UserRepository = Depends(get_user_repository),
) -> dict[str, bool]:
    if viewer_id is None:
        raise HTTPException(status_code=401, detail="You must be logged in to save contests.")
    if await users.get(viewer_id) is None:
        raise HTTPException(status_code=401, detail="Unknown viewer")
    if await contests.get(contest_id) is None:
        raise HTTPException(status_code=404, detail="Contest not found")

    await users.set_bookmark(viewer_id, contest_id, body.saved)
    logger.info(
        "bookmark_updated",
        user_id=str(viewer_id),
        contest_id=str(contest_id),
        saved=body.saved,
    )
    return {"success": True}
