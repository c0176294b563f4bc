from datetime import timedelta

import pytest

from evntly_api.app.core.config import settings
from evntly_api.app.core.db import format_timestamp, utcnow

URL = "/cron/update-activity-status"


@pytest.fixture
def cron_secret(monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "cron_test_secret")
    return "cron_test_secret"


def test_sweep_with_secret(client, seed, cron_secret):
    organizer = seed.organizer()
    now = utcnow()
    activity = seed.activity(
        organizer["id"],
        start_date_time=format_timestamp(now - timedelta(hours=1)),
        end_date_time=format_timestamp(now + timedelta(hours=1)),
    )

    response = client.get(URL, headers={"X-Cron-Secret": cron_secret})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Activity statuses updated"
    assert body["updated"]["upcoming_to_live"] == 1
    assert seed.fetch("SELECT status FROM activities WHERE id = ?", activity["id"])["status"] == "live"


@pytest.mark.parametrize("headers", [{}, {"X-Cron-Secret": "wrong"}])
def test_sweep_rejects_bad_secret(client, seed, cron_secret, headers):
    assert client.get(URL, headers=headers).status_code == 401


def test_sweep_disabled_without_configured_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "")
    assert client.get(URL, headers={"X-Cron-Secret": ""}).status_code == 401
