"""
Endpoint subpackage for API v1.

Each module in this package defines an APIRouter for one domain
(activities, registrations, payments, clubs, organizers, cron).  The
routers are aggregated in ``router.py``.
"""
