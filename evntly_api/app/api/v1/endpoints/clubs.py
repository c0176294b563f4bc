"""
Club endpoints for API v1.

Club management requires organizer credentials; joining a club is
public.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status

from evntly_api.app.core.exceptions import ServiceError
from evntly_api.app.core.security import get_current_organizer, resolve_request_organizer
from evntly_api.app.schemas.club import (
    ClubCreate,
    ClubDetail,
    ClubList,
    ClubMemberCreate,
    ClubMembershipResult,
    ClubSaved,
    ClubUpdate,
)
from evntly_api.app.schemas.common import Message
from evntly_api.app.services.club_service import ClubService

router = APIRouter()


@router.get("", response_model=ClubList)
async def list_clubs(organizer: dict = Depends(get_current_organizer)) -> ClubList:
    return ClubList(clubs=await ClubService.list_clubs(organizer["id"]))


@router.get("/{club_id}", response_model=ClubDetail)
async def get_club(
    club_id: int = Path(..., description="Club ID"),
    organizer: dict = Depends(get_current_organizer),
) -> ClubDetail:
    try:
        return ClubDetail(club=await ClubService.get_club(club_id, organizer["id"]))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


@router.post("", response_model=ClubSaved, status_code=status.HTTP_201_CREATED)
async def create_club(club: ClubCreate, organizer: dict = Depends(get_current_organizer)) -> ClubSaved:
    created = await ClubService.create_club(club, organizer["id"])
    return ClubSaved(message="Club created successfully", club=created)


@router.put("/{club_id}", response_model=ClubSaved)
async def update_club(
    club: ClubUpdate,
    club_id: int = Path(..., description="Club ID"),
    organizer: dict = Depends(get_current_organizer),
) -> ClubSaved:
    """Update the provided fields of a club."""
    try:
        updated = await ClubService.update_club(club_id, club, organizer["id"])
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
    return ClubSaved(message="Club updated successfully", club=updated)


@router.delete("/{club_id}", response_model=Message)
async def delete_club(
    club_id: int = Path(..., description="Club ID"),
    organizer: dict = Depends(get_current_organizer),
) -> Message:
    """Soft-delete a club.  Its activities stay untouched."""
    try:
        await ClubService.delete_club(club_id, organizer["id"])
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
    return Message(message="Club deleted successfully")


@router.post("/{club_id}/register", response_model=ClubMembershipResult)
async def join_club(
    member: ClubMemberCreate,
    club_id: int = Path(..., description="Club ID"),
    organizer: Optional[dict] = Depends(resolve_request_organizer),
) -> ClubMembershipResult:
    """Register a user as a club member."""
    try:
        return await ClubService.register_member(club_id, member, organizer["id"] if organizer else None)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
