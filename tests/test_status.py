from datetime import datetime, timedelta

import pytest

from evntly_api.app.core.db import format_timestamp
from evntly_api.app.services.status_service import StatusService, derive_status

MONDAY = datetime(2024, 1, 1)  # 2024-01-01 is a Monday

SCHEDULES = [
    {"day_of_week": "Monday", "start_time": "1970-01-01T10:00:00", "end_time": "1970-01-01T12:00:00"},
    {"day_of_week": "Wednesday", "start_time": "1970-01-01T14:00:00", "end_time": "1970-01-01T16:00:00"},
]


def _one_time(start, end, status="upcoming"):
    return {"type": "one-time", "status": status, "start_date_time": start, "end_date_time": end}


def test_one_time_live_inside_window():
    now = MONDAY.replace(hour=12)
    activity = _one_time(now - timedelta(hours=1), now + timedelta(hours=1))
    assert derive_status(activity, now=now) == "live"


def test_one_time_completed_after_end():
    now = MONDAY.replace(hour=12)
    activity = _one_time(now - timedelta(hours=3), now - timedelta(hours=1))
    assert derive_status(activity, now=now) == "completed"


def test_one_time_upcoming_before_start():
    now = MONDAY.replace(hour=12)
    activity = _one_time(now + timedelta(hours=1), now + timedelta(hours=3))
    assert derive_status(activity, now=now) == "upcoming"


def test_one_time_window_bounds_are_inclusive():
    start = MONDAY.replace(hour=10)
    end = MONDAY.replace(hour=12)
    assert derive_status(_one_time(start, end), now=start) == "live"
    assert derive_status(_one_time(start, end), now=end) == "live"


def test_one_time_accepts_stored_strings():
    now = MONDAY.replace(hour=12)
    activity = _one_time(format_timestamp(now - timedelta(hours=1)), format_timestamp(now + timedelta(hours=1)))
    assert derive_status(activity, now=now) == "live"


def test_one_time_without_bounds_is_upcoming():
    assert derive_status(_one_time(None, None), now=MONDAY) == "upcoming"


def test_stored_canceled_status_wins():
    now = MONDAY.replace(hour=12)
    activity = _one_time(now - timedelta(hours=1), now + timedelta(hours=1), status="canceled")
    assert derive_status(activity, now=now) == "canceled"


def test_stored_status_is_ignored_otherwise():
    now = MONDAY.replace(hour=12)
    activity = _one_time(now - timedelta(hours=3), now - timedelta(hours=1), status="live")
    assert derive_status(activity, now=now) == "completed"


@pytest.mark.parametrize(
    "now, expected",
    [
        (MONDAY.replace(hour=11), "live"),
        (MONDAY.replace(hour=9), "upcoming"),
        (MONDAY.replace(hour=13), "upcoming"),  # Wednesday still ahead
        (MONDAY + timedelta(days=1), "upcoming"),  # Tuesday
        (MONDAY + timedelta(days=2, hours=15), "live"),  # Wednesday 15:00
        (MONDAY + timedelta(days=2, hours=17), "completed"),  # Wednesday after the last window
        (MONDAY + timedelta(days=3), "completed"),  # Thursday
    ],
)
def test_recurring_status_over_the_week(now, expected):
    activity = {"type": "recurring", "status": "upcoming"}
    assert derive_status(activity, SCHEDULES, now) == expected


def test_recurring_scan_does_not_wrap_into_next_week():
    saturday = MONDAY + timedelta(days=5, hours=9)
    sunday_only = [{"day_of_week": "Sunday", "start_time": "1970-01-01T08:00:00", "end_time": "1970-01-01T09:00:00"}]
    assert derive_status({"type": "recurring"}, sunday_only, saturday) == "completed"


def test_recurring_compares_time_of_day_only():
    schedules = [{"day_of_week": "Monday", "start_time": "2019-06-03T10:00:00", "end_time": "2019-06-03T12:00:00"}]
    assert derive_status({"type": "recurring"}, schedules, MONDAY.replace(hour=10, minute=30)) == "live"


def test_recurring_without_schedules_is_completed():
    assert derive_status({"type": "recurring"}, [], MONDAY) == "completed"


@pytest.mark.asyncio
async def test_sweep_moves_one_time_activities(seed):
    organizer = seed.organizer()
    now = datetime(2024, 3, 10, 12, 0, 0)
    hour = timedelta(hours=1)
    starting = seed.activity(
        organizer["id"], slug="starting",
        start_date_time=format_timestamp(now - hour), end_date_time=format_timestamp(now + hour),
    )
    missed = seed.activity(
        organizer["id"], slug="missed",
        start_date_time=format_timestamp(now - 3 * hour), end_date_time=format_timestamp(now - 2 * hour),
    )
    ending = seed.activity(
        organizer["id"], slug="ending", status="live",
        start_date_time=format_timestamp(now - 3 * hour), end_date_time=format_timestamp(now - hour),
    )
    canceled = seed.activity(
        organizer["id"], slug="canceled", status="canceled",
        start_date_time=format_timestamp(now - 3 * hour), end_date_time=format_timestamp(now - hour),
    )
    recurring = seed.activity(organizer["id"], slug="weekly", type="recurring", start_date_time=None, end_date_time=None)

    counts = await StatusService.refresh_activity_statuses(now)

    assert counts == {"upcoming_to_live": 1, "upcoming_to_completed": 1, "live_to_completed": 1}

    def status_of(row):
        return seed.fetch("SELECT status FROM activities WHERE id = ?", row["id"])["status"]

    assert status_of(starting) == "live"
    assert status_of(missed) == "completed"
    assert status_of(ending) == "completed"
    assert status_of(canceled) == "canceled"
    assert status_of(recurring) == "upcoming"

    again = await StatusService.refresh_activity_statuses(now)
    assert again == {"upcoming_to_live": 0, "upcoming_to_completed": 0, "live_to_completed": 0}
