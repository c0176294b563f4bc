"""
Organizer endpoints for API v1.

Organizers register once for a website domain and receive a secret
key.  The key authenticates management requests directly
(``X-Secret-Key``) or can be exchanged for a bearer token.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from evntly_api.app.core.exceptions import ServiceError
from evntly_api.app.core.security import get_current_organizer
from evntly_api.app.schemas.organizer import (
    OrganizerCreate,
    OrganizerRead,
    OrganizerRegistered,
    OrganizerSettingsUpdate,
    TokenRequest,
    TokenResponse,
)
from evntly_api.app.services.organizer_service import OrganizerService, organizer_read

router = APIRouter()


@router.post("/register", response_model=OrganizerRegistered, status_code=status.HTTP_201_CREATED)
async def register_organizer(organizer: OrganizerCreate) -> OrganizerRegistered:
    """Register a new organizer.

    The response contains the organizer's secret key.  It is not
    shown again.
    """
    try:
        return await OrganizerService.register_organizer(organizer)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


@router.post("/token", response_model=TokenResponse)
async def issue_token(body: TokenRequest) -> TokenResponse:
    """Exchange a secret key for a bearer token."""
    try:
        return await OrganizerService.issue_token(body.secret_key)
    except ServiceError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


@router.get("/me", response_model=OrganizerRead)
async def read_current_organizer(organizer: dict = Depends(get_current_organizer)) -> OrganizerRead:
    return organizer_read(organizer)


@router.put("/me/settings", response_model=OrganizerRead)
async def update_settings(
    body: OrganizerSettingsUpdate,
    organizer: dict = Depends(get_current_organizer),
) -> OrganizerRead:
    """Store payment gateway and mail provider credentials."""
    return await OrganizerService.update_settings(organizer, body)
