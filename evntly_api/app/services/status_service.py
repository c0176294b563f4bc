"""
Activity status derivation and the periodic status sweep.

``derive_status`` is the single source of truth for what status an
activity is shown with.  It is pure: it reads the activity and its
schedules, compares them with ``now`` and returns one of ``upcoming``,
``live``, ``completed`` or, for activities an organizer canceled,
``canceled``.

``StatusService.refresh_activity_statuses`` persists the derived
status of one-time activities so that SQL-side filtering and external
readers of the table see reasonably fresh values.  Recurring
activities are never persisted; their status depends on the time of
day.
"""

import logging
from datetime import datetime, time
from typing import Any, Iterable, Mapping, Optional

from evntly_api.app.core.db import format_timestamp, parse_timestamp, transaction, utcnow
from evntly_api.app.schemas.activity import WEEKDAYS

logger = logging.getLogger(__name__)


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping) or hasattr(obj, "keys"):
        return obj[key] if key in obj.keys() else None
    return getattr(obj, key, None)


def _time_of_day(value: Any) -> time:
    parsed = parse_timestamp(value)
    return parsed.time().replace(microsecond=0)


def _weekday_name(moment: datetime) -> str:
    # datetime.weekday() is Monday=0; WEEKDAYS starts on Sunday.
    return WEEKDAYS[(moment.weekday() + 1) % 7]


def recurring_status(schedules: Iterable[Any], now: datetime) -> str:
    """Status of a recurring activity at ``now``.

    Today's entry decides between ``live`` and ``upcoming``.  After
    today's window, or without an entry today, the remaining days of
    the current week (Sunday to Saturday, no wrap-around) are scanned
    for any entry.
    """
    by_day: dict[str, Any] = {}
    for schedule in schedules:
        day = str(_get(schedule, "day_of_week") or "").strip().capitalize()
        by_day.setdefault(day, schedule)

    today = _weekday_name(now)
    current = now.time().replace(microsecond=0)
    todays = by_day.get(today)
    if todays is not None:
        start = _time_of_day(_get(todays, "start_time"))
        end = _time_of_day(_get(todays, "end_time"))
        if start <= current <= end:
            return "live"
        if current < start:
            return "upcoming"

    for day in WEEKDAYS[WEEKDAYS.index(today) + 1:]:
        if day in by_day:
            return "upcoming"
    return "completed"


def one_time_status(start: Any, end: Any, now: datetime) -> str:
    """Status of a one-time activity; missing bounds count as upcoming."""
    start_dt = parse_timestamp(start)
    end_dt = parse_timestamp(end)
    if start_dt is None or end_dt is None:
        return "upcoming"
    if now < start_dt:
        return "upcoming"
    if now <= end_dt:
        return "live"
    return "completed"


def derive_status(activity: Any, schedules: Optional[Iterable[Any]] = None, now: Optional[datetime] = None) -> str:
    """Return the display status of ``activity``.

    ``activity`` may be a ``sqlite3.Row``, a mapping or an object with
    attributes.  A stored ``canceled`` status is authoritative and
    skips derivation.  ``now`` defaults to the current UTC time.
    """
    if _get(activity, "status") == "canceled":
        return "canceled"
    if now is None:
        now = utcnow()
    if _get(activity, "type") == "recurring":
        return recurring_status(schedules or [], now)
    return one_time_status(_get(activity, "start_date_time"), _get(activity, "end_date_time"), now)


class StatusService:
    """Persists derived statuses of one-time activities."""

    @classmethod
    async def refresh_activity_statuses(cls, now: Optional[datetime] = None) -> dict[str, int]:
        """Move one-time activities along ``upcoming -> live -> completed``.

        Runs three conditional updates in one transaction:
        upcoming to live, upcoming to completed (the whole window passed
        between two sweeps) and live to completed.  Canceled rows are
        never touched and repeated runs are no-ops.  Returns the number
        of rows changed per transition.
        """
        now_str = format_timestamp(now or utcnow())
        counts: dict[str, int] = {}
        with transaction() as cursor:
            cursor.execute(
                """
                UPDATE activities SET status = 'live', updated_at = ?
                WHERE type = 'one-time' AND status = 'upcoming'
                  AND start_date_time <= ? AND end_date_time >= ?
                """,
                (now_str, now_str, now_str),
            )
            counts["upcoming_to_live"] = cursor.rowcount
            cursor.execute(
                """
                UPDATE activities SET status = 'completed', updated_at = ?
                WHERE type = 'one-time' AND status = 'upcoming' AND end_date_time < ?
                """,
                (now_str, now_str),
            )
            counts["upcoming_to_completed"] = cursor.rowcount
            cursor.execute(
                """
                UPDATE activities SET status = 'completed', updated_at = ?
                WHERE type = 'one-time' AND status = 'live' AND end_date_time < ?
                """,
                (now_str, now_str),
            )
            counts["live_to_completed"] = cursor.rowcount
        logger.info("Status sweep at %s: %s", now_str, counts)
        return counts
