"""
Activity endpoints for API v1.

Listing and detail pages are public and scoped to the organizer that
owns the requesting domain.  Creating, deleting and changing the
status of activities requires organizer credentials.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from evntly_api.app.core.exceptions import ServiceError
from evntly_api.app.core.security import get_current_organizer, resolve_request_organizer
from evntly_api.app.schemas.activity import (
    ActivityCreate,
    ActivityDetail,
    ActivityList,
    ActivityRead,
    ActivityStatus,
    ActivityStatusUpdate,
    ActivityStatusUpdated,
    ActivityType,
)
from evntly_api.app.schemas.common import Message
from evntly_api.app.services.activity_service import ActivityService

router = APIRouter()

NO_ORGANIZER = "No organizer found for this domain"


@router.post("", response_model=ActivityRead, status_code=status.HTTP_201_CREATED)
async def create_activity(
    activity: ActivityCreate,
    organizer: dict = Depends(get_current_organizer),
) -> ActivityRead:
    """Create a one-time or recurring activity for the authenticated organizer."""
    try:
        return await ActivityService.create_activity(activity, organizer)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


@router.get("", response_model=ActivityList)
async def list_activities(
    status_filter: Optional[ActivityStatus] = Query(None, alias="status"),
    activity_type: Optional[ActivityType] = Query(None, alias="type"),
    club_id: Optional[int] = Query(None, alias="clubId"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    order: str = Query("desc"),
    organizer: Optional[dict] = Depends(resolve_request_organizer),
) -> ActivityList:
    """List active activities of the organizer owning the request domain.

    ``status`` filters on the derived status.  Sorting accepts
    ``createdAt`` or ``startDateTime`` with ``order`` ``asc``/``desc``.
    """
    if organizer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NO_ORGANIZER)
    activities = await ActivityService.list_activities(
        organizer["id"],
        status=status_filter,
        activity_type=activity_type,
        club_id=club_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        order=order,
    )
    return ActivityList(activities=activities)


@router.get("/{slug}", response_model=ActivityDetail)
async def get_activity(
    slug: str = Path(..., min_length=1),
    organizer: Optional[dict] = Depends(resolve_request_organizer),
) -> ActivityDetail:
    """Activity detail with derived status, schedules and club."""
    if organizer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NO_ORGANIZER)
    try:
        return ActivityDetail(activity=await ActivityService.get_activity(slug, organizer["id"]))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


@router.delete("/{slug}", response_model=Message)
async def delete_activity(
    slug: str = Path(..., min_length=1),
    organizer: dict = Depends(get_current_organizer),
) -> Message:
    """Soft-delete an activity."""
    try:
        await ActivityService.delete_activity(slug, organizer["id"])
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
    return Message(message="Activity deleted successfully")


@router.patch("/{slug}/status", response_model=ActivityStatusUpdated)
async def update_activity_status(
    body: ActivityStatusUpdate,
    slug: str = Path(..., min_length=1),
    organizer: dict = Depends(get_current_organizer),
) -> ActivityStatusUpdated:
    """Manually set the status of a one-time activity (e.g. ``canceled``)."""
    try:
        activity = await ActivityService.update_status(slug, organizer["id"], body.status)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
    return ActivityStatusUpdated(activity=activity)
