"""
Registration endpoints for API v1.

``POST /activities/{slug}/register`` is the public booking endpoint.
Its response is either a completed registration or a payment request;
the ``outcome`` field tells which.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path

from evntly_api.app.api.v1.deps import get_registration_service
from evntly_api.app.core.exceptions import ServiceError
from evntly_api.app.core.security import get_current_organizer
from evntly_api.app.schemas.registration import ActivityRegistrations, RegistrationCreate, RegistrationOutcome
from evntly_api.app.services.registration_service import RegistrationService

router = APIRouter()


@router.post("/activities/{slug}/register", response_model=RegistrationOutcome)
async def register_for_activity(
    registration: RegistrationCreate,
    slug: str = Path(..., min_length=1),
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationOutcome:
    """Book tickets for an activity.

    Free activities complete immediately.  Paid activities return the
    data needed to pay: a gateway checkout (order id and key) or links
    to the organizer's manual payment page.
    """
    try:
        return await service.register(slug, registration)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


@router.get("/organizer/registrations", response_model=List[ActivityRegistrations])
async def list_organizer_registrations(
    organizer: dict = Depends(get_current_organizer),
) -> List[ActivityRegistrations]:
    """Registrations of every activity of the organizer, grouped by activity."""
    return await RegistrationService.list_for_organizer(organizer["id"])
