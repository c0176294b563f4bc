"""
Business logic for clubs and club memberships.
"""

import json
import logging
from typing import List, Optional

from evntly_api.app.core.db import format_timestamp, get_connection, parse_timestamp, transaction, utcnow
from evntly_api.app.core.exceptions import NotFoundError
from evntly_api.app.schemas.club import (
    ClubCreate,
    ClubMemberCreate,
    ClubMembershipResult,
    ClubRead,
    ClubUpdate,
    MembershipRead,
)
from evntly_api.app.schemas.registration import UserRead
from evntly_api.app.services.user_service import UserService

logger = logging.getLogger(__name__)


def _club_read(row) -> ClubRead:
    return ClubRead(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        image_urls=json.loads(row["image_urls"] or "[]"),
        video_urls=json.loads(row["video_urls"] or "[]"),
        is_active=bool(row["is_active"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def _membership_read(row) -> MembershipRead:
    return MembershipRead(
        id=row["id"],
        club_id=row["club_id"],
        user_id=row["user_id"],
        role=row["role"],
        is_active=bool(row["is_active"]),
        joined_at=parse_timestamp(row["joined_at"]),
    )


class ClubService:
    """CRUD for an organizer's clubs and public club sign-up."""

    @classmethod
    async def list_clubs(cls, organizer_id: int) -> List[ClubRead]:
        conn = get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM clubs WHERE organizer_id = ? AND is_active = 1 AND deleted_at IS NULL ORDER BY id",
                (organizer_id,),
            ).fetchall()
            return [_club_read(row) for row in rows]
        finally:
            conn.close()

    @classmethod
    async def get_club(cls, club_id: int, organizer_id: int) -> ClubRead:
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM clubs WHERE id = ? AND organizer_id = ? AND is_active = 1 AND deleted_at IS NULL",
                (club_id, organizer_id),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            raise NotFoundError("Club not found")
        return _club_read(row)

    @classmethod
    async def create_club(cls, data: ClubCreate, organizer_id: int) -> ClubRead:
        now = format_timestamp(utcnow())
        with transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO clubs (organizer_id, name, description, image_urls, video_urls, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    organizer_id,
                    data.name,
                    data.description,
                    json.dumps(data.image_urls),
                    json.dumps(data.video_urls),
                    now,
                    now,
                ),
            )
            row = cursor.execute("SELECT * FROM clubs WHERE id = ?", (cursor.lastrowid,)).fetchone()
        logger.info("Organizer %s created club %s", organizer_id, row["id"])
        return _club_read(row)

    @classmethod
    async def update_club(cls, club_id: int, data: ClubUpdate, organizer_id: int) -> ClubRead:
        """Apply the fields present in ``data``; absent fields are left as they are."""
        changes = data.model_dump(exclude_unset=True)
        columns: List[str] = []
        params: list = []
        for field, value in changes.items():
            if value is None and field in ("name", "is_active"):
                continue
            if field in ("image_urls", "video_urls"):
                value = json.dumps(value or [])
            elif field == "is_active":
                value = int(bool(value))
            columns.append(f"{field} = ?")
            params.append(value)
        columns.append("updated_at = ?")
        params.append(format_timestamp(utcnow()))

        with transaction() as cursor:
            owned = cursor.execute(
                "SELECT id FROM clubs WHERE id = ? AND organizer_id = ? AND deleted_at IS NULL",
                (club_id, organizer_id),
            ).fetchone()
            if not owned:
                raise NotFoundError("Club not found")
            cursor.execute(f"UPDATE clubs SET {', '.join(columns)} WHERE id = ?", (*params, club_id))
            row = cursor.execute("SELECT * FROM clubs WHERE id = ?", (club_id,)).fetchone()
        return _club_read(row)

    @classmethod
    async def delete_club(cls, club_id: int, organizer_id: int) -> None:
        now = format_timestamp(utcnow())
        with transaction() as cursor:
            cursor.execute(
                """
                UPDATE clubs SET is_active = 0, deleted_at = ?, updated_at = ?
                WHERE id = ? AND organizer_id = ? AND deleted_at IS NULL
                """,
                (now, now, club_id, organizer_id),
            )
            if cursor.rowcount != 1:
                raise NotFoundError("Club not found")
        logger.info("Organizer %s deleted club %s", organizer_id, club_id)

    @classmethod
    async def register_member(
        cls, club_id: int, data: ClubMemberCreate, organizer_id: Optional[int] = None
    ) -> ClubMembershipResult:
        """Add a user to a club, creating the user when unknown.

        Joining a club twice is not an error: the existing membership
        is returned with an "already a member" message.  When the
        request was resolved to an organizer, only that organizer's
        clubs are visible.
        """
        with transaction() as cursor:
            club = cursor.execute(
                "SELECT * FROM clubs WHERE id = ? AND is_active = 1 AND deleted_at IS NULL", (club_id,)
            ).fetchone()
            if not club or (organizer_id is not None and club["organizer_id"] != organizer_id):
                raise NotFoundError("Club not found or inactive")

            user = UserService.find_or_create(cursor, data.first_name, data.last_name, data.email, data.phone)
            existing = cursor.execute(
                "SELECT * FROM club_members WHERE club_id = ? AND user_id = ? AND deleted_at IS NULL",
                (club_id, user["id"]),
            ).fetchone()
            if existing:
                return ClubMembershipResult(
                    message="User is already a member of this club",
                    user=UserRead(**user),
                    membership=_membership_read(existing),
                )
            cursor.execute(
                "INSERT INTO club_members (club_id, user_id, role, joined_at) VALUES (?, ?, ?, ?)",
                (club_id, user["id"], data.role, format_timestamp(utcnow())),
            )
            membership = cursor.execute(
                "SELECT * FROM club_members WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        logger.info("User %s joined club %s", user["id"], club_id)
        return ClubMembershipResult(
            message="Club registration successful",
            user=UserRead(**user),
            membership=_membership_read(membership),
        )
