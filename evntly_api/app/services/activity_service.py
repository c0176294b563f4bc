"""
Business logic for activities.

Activities belong to an organizer either directly (``organizer_id``)
or through their club; every organizer-scoped query goes through
``COALESCE(a.organizer_id, c.organizer_id)``.  The status returned to
clients is always computed by ``derive_status``.

``reserve_slots`` is the only code that increments ``booked_slots``.
It is a single conditional ``UPDATE`` so the capacity check and the
increment cannot be separated by a concurrent writer.
"""

import json
import logging
import re
import sqlite3
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from evntly_api.app.core.db import format_timestamp, get_connection, parse_timestamp, transaction, utcnow
from evntly_api.app.core.exceptions import ConflictError, NotFoundError, ValidationError
from evntly_api.app.schemas.activity import ActivityCreate, ActivityRead, ClubSummary, ScheduleRead
from evntly_api.app.services.status_service import derive_status

logger = logging.getLogger(__name__)

ACTIVITY_SELECT = """
    SELECT a.*,
           COALESCE(a.organizer_id, c.organizer_id) AS owner_id,
           c.name AS club_name,
           c.description AS club_description,
           c.image_urls AS club_image_urls,
           c.video_urls AS club_video_urls
    FROM activities a
    LEFT JOIN clubs c ON c.id = a.club_id
"""

SORT_COLUMNS = {"createdAt": "a.created_at", "startDateTime": "a.start_date_time"}


def reserve_slots(cursor: sqlite3.Cursor, activity_id: int, count: int) -> bool:
    """Atomically add ``count`` booked slots if capacity allows.

    Returns ``False`` and changes nothing when the activity does not
    have ``count`` free slots.
    """
    cursor.execute(
        """
        UPDATE activities
        SET booked_slots = booked_slots + ?, updated_at = ?
        WHERE id = ? AND booked_slots + ? <= available_slots
        """,
        (count, format_timestamp(utcnow()), activity_id, count),
    )
    return cursor.rowcount == 1


def has_capacity(activity: Any, count: int) -> bool:
    return activity["booked_slots"] + count <= activity["available_slots"]


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
    return slug or "activity"


def json_column(value: Optional[str], default: Any) -> Any:
    if value is None or value == "":
        return default
    try:
        return json.loads(value)
    except ValueError:
        return value


def load_schedules(cursor: sqlite3.Cursor, activity_ids: Iterable[int]) -> Dict[int, List[dict]]:
    """Fetch live schedule entries for several activities at once."""
    ids = list(activity_ids)
    if not ids:
        return {}
    placeholders = ",".join("?" for _ in ids)
    rows = cursor.execute(
        f"""
        SELECT activity_id, day_of_week, start_time, end_time
        FROM activity_schedules
        WHERE activity_id IN ({placeholders}) AND deleted_at IS NULL
        ORDER BY id
        """,
        ids,
    ).fetchall()
    grouped: Dict[int, List[dict]] = {activity_id: [] for activity_id in ids}
    for row in rows:
        grouped[row["activity_id"]].append(dict(row))
    return grouped


def build_activity_read(row: Any, schedules: Optional[List[dict]] = None, now: Optional[datetime] = None) -> ActivityRead:
    """Convert an ``ACTIVITY_SELECT`` row into the API model."""
    keys = row.keys()
    club = None
    if "club_name" in keys and row["club_name"] is not None:
        club = ClubSummary(
            name=row["club_name"],
            description=row["club_description"],
            image_urls=json_column(row["club_image_urls"], []),
            video_urls=json_column(row["club_video_urls"], []),
        )
    recurring = row["type"] == "recurring"
    return ActivityRead(
        slug=row["slug"],
        name=row["name"],
        description=row["description"],
        additional_info=json_column(row["additional_info"], None),
        venue_name=row["venue_name"],
        map_url=row["map_url"],
        image_urls=json_column(row["image_urls"], []),
        video_urls=json_column(row["video_urls"], []),
        type=row["type"],
        available_slots=row["available_slots"],
        booked_slots=row["booked_slots"],
        registration_fee=row["registration_fee"],
        is_registration_open=bool(row["is_registration_open"]),
        status=row["status"],
        current_status=derive_status(row, schedules, now),
        start_date_time=parse_timestamp(row["start_date_time"]),
        end_date_time=parse_timestamp(row["end_date_time"]),
        schedules=[
            ScheduleRead(
                day_of_week=s["day_of_week"],
                start_time=parse_timestamp(s["start_time"]),
                end_time=parse_timestamp(s["end_time"]),
            )
            for s in schedules or []
        ]
        if recurring
        else None,
        club=club,
        created_at=parse_timestamp(row["created_at"]),
    )


class ActivityService:
    """Create, list, read and manage activities of one organizer."""

    @classmethod
    async def create_activity(cls, data: ActivityCreate, organizer: dict) -> ActivityRead:
        """Create an activity owned by ``organizer``.

        A slug is derived from the name when none is given; derived
        slugs get a numeric suffix until unique, while an explicit
        slug that is already taken is a conflict.
        """
        with transaction() as cursor:
            if data.club_id is not None:
                club = cursor.execute(
                    "SELECT id FROM clubs WHERE id = ? AND organizer_id = ? AND deleted_at IS NULL",
                    (data.club_id, organizer["id"]),
                ).fetchone()
                if not club:
                    raise NotFoundError("Club not found")

            slug = cls._unique_slug(cursor, data.slug, data.name)
            stored_status = "upcoming"
            if data.type == "one-time":
                stored_status = derive_status(
                    {"type": data.type, "start_date_time": data.start_date_time, "end_date_time": data.end_date_time}
                )
            now = format_timestamp(utcnow())
            cursor.execute(
                """
                INSERT INTO activities (
                    slug, club_id, organizer_id, name, description, additional_info,
                    venue_name, map_url, image_urls, video_urls, type,
                    available_slots, booked_slots, registration_fee, is_registration_open,
                    status, start_date_time, end_date_time, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    slug,
                    data.club_id,
                    organizer["id"],
                    data.name,
                    data.description,
                    json.dumps(data.additional_info) if data.additional_info is not None else None,
                    data.venue_name,
                    data.map_url,
                    json.dumps(data.image_urls),
                    json.dumps(data.video_urls),
                    data.type,
                    data.available_slots,
                    data.registration_fee,
                    int(data.is_registration_open),
                    stored_status,
                    format_timestamp(data.start_date_time) if data.type == "one-time" else None,
                    format_timestamp(data.end_date_time) if data.type == "one-time" else None,
                    now,
                    now,
                ),
            )
            activity_id = cursor.lastrowid
            if data.type == "recurring":
                cursor.executemany(
                    """
                    INSERT INTO activity_schedules (activity_id, day_of_week, start_time, end_time)
                    VALUES (?, ?, ?, ?)
                    """,
                    [
                        (activity_id, s.day_of_week, format_timestamp(s.start_time), format_timestamp(s.end_time))
                        for s in data.schedules
                    ],
                )
            row = cursor.execute(ACTIVITY_SELECT + " WHERE a.id = ?", (activity_id,)).fetchone()
            schedules = load_schedules(cursor, [activity_id])[activity_id]
        logger.info("Organizer %s created activity %s (%s)", organizer["id"], activity_id, slug)
        return build_activity_read(row, schedules)

    @staticmethod
    def _unique_slug(cursor: sqlite3.Cursor, requested: Optional[str], name: str) -> str:
        def taken(candidate: str) -> bool:
            return cursor.execute("SELECT 1 FROM activities WHERE slug = ?", (candidate,)).fetchone() is not None

        if requested:
            slug = slugify(requested)
            if taken(slug):
                raise ConflictError(f"Slug '{slug}' is already in use")
            return slug
        base = slugify(name)
        slug, suffix = base, 2
        while taken(slug):
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    @classmethod
    async def list_activities(
        cls,
        organizer_id: int,
        status: Optional[str] = None,
        activity_type: Optional[str] = None,
        club_id: Optional[int] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "createdAt",
        order: str = "desc",
        now: Optional[datetime] = None,
    ) -> List[ActivityRead]:
        """Return active activities of an organizer.

        - ``status`` filters on the derived status, so it is applied
          after derivation and pagination follows it.
        - ``activity_type`` and ``club_id`` are SQL filters.
        - ``sort_by`` is ``createdAt`` or ``startDateTime``; unknown
          values fall back to ``createdAt``.
        - ``page`` starts at 1; ``limit`` is capped at 100.
        """
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        offset = (page - 1) * limit
        column = SORT_COLUMNS.get(sort_by, SORT_COLUMNS["createdAt"])
        direction = "ASC" if order.lower() == "asc" else "DESC"

        where = ["COALESCE(a.organizer_id, c.organizer_id) = ?", "a.is_active = 1", "a.deleted_at IS NULL"]
        params: list = [organizer_id]
        if activity_type:
            where.append("a.type = ?")
            params.append(activity_type)
        if club_id is not None:
            where.append("a.club_id = ?")
            params.append(club_id)
        query = ACTIVITY_SELECT + " WHERE " + " AND ".join(where) + f" ORDER BY {column} {direction}, a.id {direction}"
        if not status:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        conn = get_connection()
        try:
            cursor = conn.cursor()
            rows = cursor.execute(query, tuple(params)).fetchall()
            schedules = load_schedules(cursor, [row["id"] for row in rows if row["type"] == "recurring"])
        finally:
            conn.close()

        now = now or utcnow()
        activities = [build_activity_read(row, schedules.get(row["id"]), now) for row in rows]
        if status:
            activities = [a for a in activities if a.current_status == status][offset:offset + limit]
        return activities

    @classmethod
    async def get_activity(cls, slug: str, organizer_id: Optional[int] = None) -> ActivityRead:
        """Return one activity by slug, optionally scoped to an organizer."""
        query = ACTIVITY_SELECT + " WHERE a.slug = ? AND a.deleted_at IS NULL"
        params: list = [slug]
        if organizer_id is not None:
            query += " AND COALESCE(a.organizer_id, c.organizer_id) = ?"
            params.append(organizer_id)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(query, tuple(params)).fetchone()
            if not row:
                raise NotFoundError("Activity not found")
            schedules = load_schedules(cursor, [row["id"]])[row["id"]]
        finally:
            conn.close()
        return build_activity_read(row, schedules)

    @classmethod
    def _owned_activity(cls, cursor: sqlite3.Cursor, slug: str, organizer_id: int) -> sqlite3.Row:
        row = cursor.execute(
            ACTIVITY_SELECT + " WHERE a.slug = ? AND a.deleted_at IS NULL AND COALESCE(a.organizer_id, c.organizer_id) = ?",
            (slug, organizer_id),
        ).fetchone()
        if not row:
            raise NotFoundError("Activity not found")
        return row

    @classmethod
    async def delete_activity(cls, slug: str, organizer_id: int) -> None:
        """Soft-delete an activity; its registrations and payments stay intact."""
        now = format_timestamp(utcnow())
        with transaction() as cursor:
            row = cls._owned_activity(cursor, slug, organizer_id)
            cursor.execute(
                "UPDATE activities SET is_active = 0, deleted_at = ?, updated_at = ? WHERE id = ?",
                (now, now, row["id"]),
            )
        logger.info("Organizer %s deleted activity %s", organizer_id, row["id"])

    @classmethod
    async def update_status(cls, slug: str, organizer_id: int, status: str) -> ActivityRead:
        """Set the stored status of a one-time activity.

        Recurring activities have no stored status to set; their status
        is always derived from the schedule.
        """
        with transaction() as cursor:
            row = cls._owned_activity(cursor, slug, organizer_id)
            if row["type"] == "recurring":
                raise ValidationError(
                    "Cannot manually update status for recurring activities. "
                    "Status is calculated dynamically based on schedules."
                )
            cursor.execute(
                "UPDATE activities SET status = ?, updated_at = ? WHERE id = ?",
                (status, format_timestamp(utcnow()), row["id"]),
            )
            updated = cursor.execute(ACTIVITY_SELECT + " WHERE a.id = ?", (row["id"],)).fetchone()
        logger.info("Organizer %s set status of activity %s to %s", organizer_id, row["id"], status)
        return build_activity_read(updated)
