"""
Business logic for users.

Users are created implicitly when somebody books an activity or joins
a club.  They are identified by email, or by phone when no email was
given, and never receive credentials through these paths.
"""

import logging
import sqlite3
from typing import Optional

logger = logging.getLogger(__name__)


class UserService:
    """Lookup and implicit creation of users."""

    @staticmethod
    def find_or_create(
        cursor: sqlite3.Cursor,
        first_name: str,
        last_name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> dict:
        """Return the user matching ``email`` (or ``phone``), creating it if absent.

        Runs on the caller's cursor so the lookup and the insert belong
        to the caller's transaction.  The profile of an existing user is
        left untouched.
        """
        if not email and not phone:
            raise ValueError("either email or phone is required")
        # Email first, then phone.
        for column, value in (("email", email), ("phone", phone)):
            if not value:
                continue
            row = cursor.execute(
                f"SELECT * FROM users WHERE {column} = ? AND deleted_at IS NULL", (value,)
            ).fetchone()
            if row:
                return dict(row)

        cursor.execute(
            "INSERT INTO users (first_name, last_name, email, phone) VALUES (?, ?, ?, ?)",
            (first_name, last_name, email, phone),
        )
        user_id = cursor.lastrowid
        logger.info("Created user %s", user_id)
        return dict(cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone())
