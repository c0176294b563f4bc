"""
SQLite database integration and simple migration system.

This module provides functions for obtaining a database connection
(``get_connection``), running a unit of work inside a write
transaction (``transaction``), applying migrations on application
start (``init_db``) and converting timestamps to and from the stored
representation.

The migration mechanism stores applied migration versions in the
``migrations`` table and executes new migrations in order.
"""

import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from .config import settings


def get_database_path() -> str:
    """Compute the path to the SQLite database file.

    If ``settings.database_url`` is an absolute path, use it directly.
    Otherwise resolve it relative to the package root.
    """
    db_url = settings.database_url
    if os.path.isabs(db_url):
        return db_url
    base_dir = Path(__file__).resolve().parent.parent.parent  # evntly_api/
    return str((base_dir / db_url).resolve())


def get_connection() -> sqlite3.Connection:
    """Create and return a new SQLite connection.

    The connection uses a row factory to access columns by name and
    waits up to ``settings.database_timeout`` seconds for a lock held
    by another connection.  No type detection is enabled; timestamps
    come back as the ISO strings they were stored as.
    """
    conn = sqlite3.connect(get_database_path(), timeout=settings.database_timeout)
    conn.row_factory = sqlite3.Row
    # Foreign key enforcement is per connection in SQLite.
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_cursor() -> Iterator[sqlite3.Cursor]:
    """Context manager that yields a cursor and closes the connection on exit."""
    conn = get_connection()
    try:
        yield conn.cursor()
        conn.commit()
    finally:
        conn.close()


@contextmanager
def transaction() -> Iterator[sqlite3.Cursor]:
    """Run a block inside a ``BEGIN IMMEDIATE`` transaction.

    The write lock is taken up front, so reads made inside the block
    cannot be invalidated by a concurrent writer before the block
    commits.  Any exception rolls back every statement of the block.
    """
    conn = get_connection()
    conn.isolation_level = None
    try:
        cursor = conn.cursor()
        cursor.execute("BEGIN IMMEDIATE")
        try:
            yield cursor
        except BaseException:
            if conn.in_transaction:
                cursor.execute("ROLLBACK")
            raise
        cursor.execute("COMMIT")
    finally:
        conn.close()


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the stored convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for storage.

    Aware datetimes are converted to UTC first.  The ISO format with
    seconds precision sorts lexicographically, which the status sweep
    relies on when comparing in SQL.
    """
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="seconds")


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Inverse of :func:`format_timestamp`; tolerant of ``datetime`` input."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: core schema
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            phone TEXT UNIQUE,
            email TEXT UNIQUE,
            password_hash TEXT DEFAULT '',
            is_active INTEGER NOT NULL DEFAULT 1,
            last_login TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS organizers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER,
            secret_key TEXT NOT NULL UNIQUE,
            organization_name TEXT NOT NULL,
            organizer_email TEXT NOT NULL UNIQUE,
            system_email TEXT,
            resend_api_key TEXT,
            razorpay_key_id TEXT,
            razorpay_key_secret TEXT,
            razorpay_webhook_secret TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            secret_key_last_rotated TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS clubs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            organizer_id INTEGER,
            name TEXT NOT NULL,
            description TEXT,
            image_urls TEXT DEFAULT '[]',
            video_urls TEXT DEFAULT '[]',
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP,
            FOREIGN KEY(organizer_id) REFERENCES organizers(id)
        );

        CREATE TABLE IF NOT EXISTS club_members (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            club_id INTEGER,
            user_id INTEGER,
            role TEXT NOT NULL DEFAULT 'member',
            is_active INTEGER NOT NULL DEFAULT 1,
            joined_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP,
            FOREIGN KEY(club_id) REFERENCES clubs(id),
            FOREIGN KEY(user_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS activities (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            slug TEXT NOT NULL UNIQUE,
            club_id INTEGER,
            organizer_id INTEGER,
            name TEXT NOT NULL,
            description TEXT,
            additional_info TEXT DEFAULT '{}',
            venue_name TEXT,
            map_url TEXT,
            image_urls TEXT DEFAULT '[]',
            video_urls TEXT DEFAULT '[]',
            type TEXT NOT NULL DEFAULT 'one-time',
            available_slots INTEGER NOT NULL DEFAULT 0,
            booked_slots INTEGER NOT NULL DEFAULT 0,
            registration_fee INTEGER NOT NULL DEFAULT 0,
            is_registration_open INTEGER NOT NULL DEFAULT 1,
            status TEXT NOT NULL DEFAULT 'upcoming',
            is_active INTEGER NOT NULL DEFAULT 1,
            start_date_time TIMESTAMP,
            end_date_time TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP,
            CHECK (booked_slots >= 0 AND booked_slots <= available_slots),
            FOREIGN KEY(club_id) REFERENCES clubs(id),
            FOREIGN KEY(organizer_id) REFERENCES organizers(id)
        );

        CREATE TABLE IF NOT EXISTS activity_schedules (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            activity_id INTEGER NOT NULL,
            day_of_week TEXT NOT NULL,
            start_time TIMESTAMP NOT NULL,
            end_time TIMESTAMP NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP,
            FOREIGN KEY(activity_id) REFERENCES activities(id)
        );

        CREATE TABLE IF NOT EXISTS activity_registrations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            activity_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'registered',
            ticket_count INTEGER NOT NULL DEFAULT 1,
            registered_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP,
            FOREIGN KEY(activity_id) REFERENCES activities(id),
            FOREIGN KEY(user_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS payments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            registration_id INTEGER NOT NULL,
            amount TEXT NOT NULL,
            currency TEXT NOT NULL DEFAULT 'INR',
            ticket_count INTEGER NOT NULL DEFAULT 1,
            status TEXT NOT NULL DEFAULT 'pending',
            payment_method TEXT NOT NULL,
            provider_payment_id TEXT,
            gateway_payment_id TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            deleted_at TIMESTAMP,
            FOREIGN KEY(registration_id) REFERENCES activity_registrations(id)
        );

        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER,
            reason TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            provider_message_id TEXT,
            error_message TEXT,
            sent_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );
        """,
    ),
    # Migration 2: domain-based organizer scoping
    (
        2,
        """
        ALTER TABLE organizers ADD COLUMN website_domain TEXT;
        CREATE UNIQUE INDEX IF NOT EXISTS idx_organizers_website_domain ON organizers(website_domain);
        """,
    ),
    # Migration 3: lookup indices used by booking and reconciliation
    (
        3,
        """
        CREATE INDEX IF NOT EXISTS idx_registrations_activity_user
            ON activity_registrations(activity_id, user_id);
        CREATE INDEX IF NOT EXISTS idx_payments_provider_payment_id ON payments(provider_payment_id);
        CREATE INDEX IF NOT EXISTS idx_payments_registration_id ON payments(registration_id);
        CREATE INDEX IF NOT EXISTS idx_schedules_activity_id ON activity_schedules(activity_id);
        CREATE INDEX IF NOT EXISTS idx_activities_organizer_id ON activities(organizer_id);
        CREATE INDEX IF NOT EXISTS idx_activities_status_type ON activities(type, status);
        """,
    ),
]


def init_db() -> None:
    """Initialise the database and apply pending migrations.

    Creates the ``migrations`` table if it does not exist, checks the
    current schema version, and applies any newer entries of
    ``MIGRATIONS``.  Append new migrations with an incremented version.
    """
    with get_cursor() as cursor:
        cursor.execute("CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)")
        cursor.execute("SELECT MAX(version) as version FROM migrations")
        row = cursor.fetchone()
        current_version = row["version"] if row and row["version"] is not None else 0

        for version, sql in MIGRATIONS:
            if version > current_version:
                cursor.executescript(sql)
                cursor.execute("INSERT INTO migrations (version) VALUES (?)", (version,))
                current_version = version
