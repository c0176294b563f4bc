import json
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from evntly_api.app.api.v1.deps import get_gateway, get_notifier
from evntly_api.app.core.config import settings
from evntly_api.app.core.db import format_timestamp, get_connection, init_db, utcnow
from evntly_api.app.core.exceptions import NotificationError, PaymentGatewayError
from evntly_api.app.main import app

TEST_DOMAIN = "testserver"  # TestClient's default Host header


class FakeGateway:
    def __init__(self):
        self.orders = []
        self.fail = False

    async def create_order(self, key_id, key_secret, amount, currency, receipt, notes=None):
        if self.fail:
            raise PaymentGatewayError("Payment gateway unavailable: HTTP 503")
        order = {
            "id": f"order_test_{len(self.orders) + 1}",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        self.orders.append(order)
        return order


class FakeNotifier:
    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_registration_confirmation(self, organizer, user, activity, ticket_count):
        if self.fail:
            raise NotificationError("Mail provider unreachable")
        self.sent.append(
            {"organizer_id": organizer["id"], "user_id": user["id"], "activity_id": activity["id"], "tickets": ticket_count}
        )
        return f"msg_{len(self.sent)}"


class Seeder:
    """Inserts rows directly so tests can start from any state."""

    def organizer(self, domain=TEST_DOMAIN, secret_key="evk_test_secret", email="owner@studio.example", **extra):
        columns = {
            "secret_key": secret_key,
            "organization_name": "Sunrise Studio",
            "organizer_email": email,
            "website_domain": domain,
        }
        columns.update(extra)
        organizer_id = self._insert("organizers", columns)
        return self.fetch("SELECT * FROM organizers WHERE id = ?", organizer_id)

    def gateway_organizer(self, **extra):
        extra.setdefault("razorpay_key_id", "rzp_test_key")
        extra.setdefault("razorpay_key_secret", "rzp_test_secret")
        extra.setdefault("razorpay_webhook_secret", "whsec_test")
        return self.organizer(**extra)

    def club(self, organizer_id, name="Morning Club"):
        club_id = self._insert("clubs", {"organizer_id": organizer_id, "name": name})
        return self.fetch("SELECT * FROM clubs WHERE id = ?", club_id)

    def activity(self, organizer_id, slug="sunrise-yoga", available_slots=10, booked_slots=0, registration_fee=0, **extra):
        now = utcnow()
        columns = {
            "slug": slug,
            "organizer_id": organizer_id,
            "name": slug.replace("-", " ").title(),
            "type": "one-time",
            "available_slots": available_slots,
            "booked_slots": booked_slots,
            "registration_fee": registration_fee,
            "start_date_time": format_timestamp(now + timedelta(days=1)),
            "end_date_time": format_timestamp(now + timedelta(days=1, hours=2)),
            "image_urls": json.dumps([]),
            "video_urls": json.dumps([]),
        }
        columns.update(extra)
        activity_id = self._insert("activities", columns)
        return self.fetch("SELECT * FROM activities WHERE id = ?", activity_id)

    def schedule(self, activity_id, day_of_week, start="10:00:00", end="12:00:00"):
        return self._insert(
            "activity_schedules",
            {
                "activity_id": activity_id,
                "day_of_week": day_of_week,
                "start_time": f"1970-01-01T{start}",
                "end_time": f"1970-01-01T{end}",
            },
        )

    def fetch(self, sql, *params):
        conn = get_connection()
        try:
            row = conn.execute(sql, params).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def fetch_all(self, sql, *params):
        conn = get_connection()
        try:
            return [dict(row) for row in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def execute(self, sql, *params):
        conn = get_connection()
        try:
            conn.execute(sql, params)
            conn.commit()
        finally:
            conn.close()

    def _insert(self, table, columns):
        placeholders = ", ".join("?" for _ in columns)
        conn = get_connection()
        try:
            cursor = conn.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                tuple(columns.values()),
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", str(tmp_path / "evntly-test.db"))
    init_db()
    yield


@pytest.fixture
def seed():
    return Seeder()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def client(gateway, notifier):
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
