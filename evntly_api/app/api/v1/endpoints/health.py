"""
Health check endpoint.
"""

from fastapi import APIRouter

from evntly_api.app.core.config import settings
from evntly_api.app.core.db import utcnow
from evntly_api.app.schemas.common import HealthStatus

router = APIRouter()


@router.get("/", response_model=HealthStatus)
async def health() -> HealthStatus:
    return HealthStatus(message=f"{settings.project_name} is running", version=settings.api_version, timestamp=utcnow())
