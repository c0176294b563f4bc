"""
Top-level router for version 1 of the API.

This router aggregates the domain routers.  Routers whose paths span
several prefixes (registrations, payments) define full paths
themselves and are included without a prefix.
"""

from fastapi import APIRouter

from .endpoints import activities, clubs, cron, health, organizers, payments, registrations

router = APIRouter()

router.include_router(health.router, tags=["health"])
router.include_router(organizers.router, prefix="/organizers", tags=["organizers"])
router.include_router(clubs.router, prefix="/clubs", tags=["clubs"])
router.include_router(activities.router, prefix="/activities", tags=["activities"])
router.include_router(registrations.router, tags=["registrations"])
router.include_router(payments.router, tags=["payments"])
router.include_router(cron.router, prefix="/cron", tags=["cron"])
