"""
Scheduler-triggered endpoints for API v1.
"""

from fastapi import APIRouter, Depends

from evntly_api.app.core.db import utcnow
from evntly_api.app.core.security import require_cron_secret
from evntly_api.app.schemas.common import StatusSweepResult
from evntly_api.app.services.status_service import StatusService

router = APIRouter()


@router.get("/update-activity-status", response_model=StatusSweepResult, dependencies=[Depends(require_cron_secret)])
async def update_activity_status() -> StatusSweepResult:
    """Persist derived statuses of one-time activities.

    Requires the ``X-Cron-Secret`` header.  Safe to call repeatedly.
    """
    now = utcnow()
    updated = await StatusService.refresh_activity_statuses(now)
    return StatusSweepResult(updated=updated, timestamp=now)
