from datetime import timedelta

from evntly_api.app.core.db import format_timestamp, utcnow

HEADERS = {"X-Secret-Key": "evk_test_secret"}


def _one_time_payload(name="Sunrise Yoga", **extra):
    start = utcnow() + timedelta(days=3)
    payload = {
        "name": name,
        "available_slots": 20,
        "registration_fee": 0,
        "start_date_time": format_timestamp(start),
        "end_date_time": format_timestamp(start + timedelta(hours=2)),
    }
    payload.update(extra)
    return payload


def test_health(client):
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["message"].endswith("is running")
    assert "version" in body


# ----------------------------------------------------------------------
# Organizers


def _register_organizer(client, domain="https://www.testserver/", email="hello@studio.example"):
    return client.post(
        "/organizers/register",
        json={
            "organizationName": "Sunrise Studio",
            "organizerEmail": email,
            "firstName": "Meera",
            "lastName": "Iyer",
            "websiteDomain": domain,
        },
    )


def test_register_organizer_normalizes_domain(client, seed):
    response = _register_organizer(client)

    assert response.status_code == 201
    body = response.json()
    assert body["organizer"]["website_domain"] == "testserver"
    assert body["secret_key"].startswith("evk_")
    assert body["organizer"]["payment_gateway_configured"] is False
    stored = seed.fetch("SELECT * FROM organizers")
    assert stored["secret_key"] == body["secret_key"]
    assert seed.fetch("SELECT email FROM users WHERE id = ?", stored["user_id"])["email"] == "hello@studio.example"


def test_register_organizer_rejects_taken_domain_and_email(client):
    assert _register_organizer(client).status_code == 201
    assert _register_organizer(client, email="other@studio.example").status_code == 409
    assert _register_organizer(client, domain="other.example").status_code == 409


def test_secret_key_exchanges_for_token(client):
    secret_key = _register_organizer(client).json()["secret_key"]

    token = client.post("/organizers/token", json={"secret_key": secret_key})
    assert token.status_code == 200
    access_token = token.json()["access_token"]

    me = client.get("/organizers/me", headers={"Authorization": f"Bearer {access_token}"})
    assert me.status_code == 200
    assert me.json()["organization_name"] == "Sunrise Studio"


def test_invalid_secret_key_is_rejected(client):
    assert client.post("/organizers/token", json={"secret_key": "evk_nope"}).status_code == 401
    assert client.get("/organizers/me", headers={"X-Secret-Key": "evk_nope"}).status_code == 401
    assert client.get("/organizers/me").status_code == 401
    assert client.get("/organizers/me", headers={"Authorization": "Bearer not.a.token"}).status_code == 401


def test_settings_store_flags_not_secrets(client, seed):
    seed.organizer()

    response = client.put(
        "/organizers/me/settings",
        headers=HEADERS,
        json={"razorpay_key_id": "rzp_key", "razorpay_key_secret": "rzp_secret", "razorpay_webhook_secret": "wh"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["payment_gateway_configured"] is True
    assert body["webhook_secret_configured"] is True
    assert "razorpay_key_secret" not in body

    cleared = client.put("/organizers/me/settings", headers=HEADERS, json={"razorpay_webhook_secret": ""})
    assert cleared.json()["webhook_secret_configured"] is False
    assert seed.fetch("SELECT razorpay_webhook_secret FROM organizers")["razorpay_webhook_secret"] is None
    assert seed.fetch("SELECT razorpay_key_id FROM organizers")["razorpay_key_id"] == "rzp_key"


# ----------------------------------------------------------------------
# Clubs


def test_club_crud(client, seed):
    seed.organizer()

    created = client.post("/clubs", headers=HEADERS, json={"name": "Riverside Runners", "image_urls": ["a.png"]})
    assert created.status_code == 201
    club_id = created.json()["club"]["id"]

    listed = client.get("/clubs", headers=HEADERS).json()["clubs"]
    assert [club["name"] for club in listed] == ["Riverside Runners"]

    updated = client.put(f"/clubs/{club_id}", headers=HEADERS, json={"description": "Early runs"})
    assert updated.status_code == 200
    assert updated.json()["club"]["description"] == "Early runs"
    assert updated.json()["club"]["name"] == "Riverside Runners"
    assert updated.json()["club"]["image_urls"] == ["a.png"]

    assert client.delete(f"/clubs/{club_id}", headers=HEADERS).status_code == 200
    assert client.get(f"/clubs/{club_id}", headers=HEADERS).status_code == 404
    assert client.delete(f"/clubs/{club_id}", headers=HEADERS).status_code == 404


def test_clubs_are_scoped_to_owner(client, seed):
    owner = seed.organizer()
    seed.organizer(domain="other.example", secret_key="evk_other", email="other@studio.example")
    club = seed.club(owner["id"])

    other = {"X-Secret-Key": "evk_other"}
    assert client.get(f"/clubs/{club['id']}", headers=other).status_code == 404
    assert client.put(f"/clubs/{club['id']}", headers=other, json={"name": "Mine"}).status_code == 404


def test_join_club_once(client, seed):
    organizer = seed.organizer()
    club = seed.club(organizer["id"])
    member = {"firstName": "Ravi", "lastName": "Das", "email": "ravi@example.com"}

    first = client.post(f"/clubs/{club['id']}/register", json=member)
    second = client.post(f"/clubs/{club['id']}/register", json=member)

    assert first.status_code == 200
    assert first.json()["message"] == "Club registration successful"
    assert second.json()["message"] == "User is already a member of this club"
    assert second.json()["membership"]["id"] == first.json()["membership"]["id"]
    assert len(seed.fetch_all("SELECT * FROM club_members")) == 1


def test_join_club_of_other_domain_is_404(client, seed):
    seed.organizer()
    other = seed.organizer(domain="other.example", secret_key="evk_other", email="other@studio.example")
    club = seed.club(other["id"])

    response = client.post(
        f"/clubs/{club['id']}/register", json={"firstName": "Ravi", "lastName": "Das", "email": "ravi@example.com"}
    )

    assert response.status_code == 404


# ----------------------------------------------------------------------
# Activities


def test_create_one_time_activity(client, seed):
    seed.organizer()

    response = client.post("/activities", headers=HEADERS, json=_one_time_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["slug"] == "sunrise-yoga"
    assert body["current_status"] == "upcoming"
    assert body["booked_slots"] == 0
    assert body["schedules"] is None


def test_derived_slugs_get_suffixes(client, seed):
    seed.organizer()

    slugs = [client.post("/activities", headers=HEADERS, json=_one_time_payload()).json()["slug"] for _ in range(3)]

    assert slugs == ["sunrise-yoga", "sunrise-yoga-2", "sunrise-yoga-3"]


def test_explicit_slug_conflict(client, seed):
    seed.organizer()
    client.post("/activities", headers=HEADERS, json=_one_time_payload(slug="morning"))

    response = client.post("/activities", headers=HEADERS, json=_one_time_payload(slug="morning"))

    assert response.status_code == 409


def test_create_recurring_activity_in_club(client, seed):
    organizer = seed.organizer()
    club = seed.club(organizer["id"])
    payload = {
        "name": "Weekly Run",
        "type": "recurring",
        "club_id": club["id"],
        "available_slots": 30,
        "schedules": [
            {"day_of_week": "saturday", "start_time": "1970-01-01T06:00:00", "end_time": "1970-01-01T07:30:00"}
        ],
    }

    response = client.post("/activities", headers=HEADERS, json=payload)

    assert response.status_code == 201
    body = response.json()
    assert body["schedules"][0]["day_of_week"] == "Saturday"
    assert body["club"]["name"] == "Morning Club"


def test_create_activity_in_foreign_club_is_404(client, seed):
    seed.organizer()
    other = seed.organizer(domain="other.example", secret_key="evk_other", email="other@studio.example")
    club = seed.club(other["id"])

    response = client.post("/activities", headers=HEADERS, json=_one_time_payload(club_id=club["id"]))

    assert response.status_code == 404


def test_create_activity_validation_errors_are_400(client, seed):
    seed.organizer()

    missing_dates = client.post("/activities", headers=HEADERS, json={"name": "No Dates"})
    no_schedules = client.post("/activities", headers=HEADERS, json={"name": "Run", "type": "recurring"})
    bad_day = client.post(
        "/activities",
        headers=HEADERS,
        json={
            "name": "Run",
            "type": "recurring",
            "schedules": [{"day_of_week": "Funday", "start_time": "1970-01-01T06:00:00", "end_time": "1970-01-01T07:00:00"}],
        },
    )

    assert missing_dates.status_code == 400
    assert no_schedules.status_code == 400
    assert bad_day.status_code == 400
    assert "detail" in missing_dates.json()


def test_create_activity_requires_credentials(client, seed):
    seed.organizer()
    assert client.post("/activities", json=_one_time_payload()).status_code == 401


def test_list_activities_for_request_domain(client, seed):
    organizer = seed.organizer()
    other = seed.organizer(domain="other.example", secret_key="evk_other", email="other@studio.example")
    seed.activity(organizer["id"], slug="mine")
    seed.activity(other["id"], slug="theirs")
    seed.activity(organizer["id"], slug="hidden", is_active=0)

    response = client.get("/activities")

    assert response.status_code == 200
    assert [a["slug"] for a in response.json()["activities"]] == ["mine"]


def test_list_activities_unknown_domain_is_404(client, seed):
    seed.organizer(domain="studio.example")

    response = client.get("/activities")

    assert response.status_code == 404
    assert response.json()["detail"] == "No organizer found for this domain"


def test_list_activities_origin_header_wins(client, seed):
    organizer = seed.organizer(domain="studio.example")
    seed.activity(organizer["id"], slug="origin-scoped")

    response = client.get("/activities", headers={"Origin": "https://www.studio.example"})

    assert [a["slug"] for a in response.json()["activities"]] == ["origin-scoped"]


def test_list_activities_filters_on_derived_status(client, seed):
    organizer = seed.organizer()
    now = utcnow()
    seed.activity(
        organizer["id"], slug="live-now", status="upcoming",
        start_date_time=format_timestamp(now - timedelta(hours=1)),
        end_date_time=format_timestamp(now + timedelta(hours=1)),
    )
    seed.activity(organizer["id"], slug="later")

    live = client.get("/activities", params={"status": "live"}).json()["activities"]
    upcoming = client.get("/activities", params={"status": "upcoming"}).json()["activities"]

    assert [a["slug"] for a in live] == ["live-now"]
    assert live[0]["status"] == "upcoming"
    assert live[0]["current_status"] == "live"
    assert [a["slug"] for a in upcoming] == ["later"]


def test_list_activities_sorting_and_paging(client, seed):
    organizer = seed.organizer()
    now = utcnow()
    for offset, slug in ((3, "third"), (1, "first"), (2, "second")):
        start = now + timedelta(days=offset)
        seed.activity(
            organizer["id"], slug=slug,
            start_date_time=format_timestamp(start),
            end_date_time=format_timestamp(start + timedelta(hours=1)),
        )

    ascending = client.get("/activities", params={"sortBy": "startDateTime", "order": "asc"}).json()["activities"]
    page_two = client.get(
        "/activities", params={"sortBy": "startDateTime", "order": "asc", "limit": 2, "page": 2}
    ).json()["activities"]

    assert [a["slug"] for a in ascending] == ["first", "second", "third"]
    assert [a["slug"] for a in page_two] == ["third"]
    assert client.get("/activities", params={"limit": 101}).status_code == 400


def test_list_activities_by_type_and_club(client, seed):
    organizer = seed.organizer()
    club = seed.club(organizer["id"])
    seed.activity(organizer["id"], slug="club-run", club_id=club["id"])
    weekly = seed.activity(organizer["id"], slug="weekly", type="recurring", start_date_time=None, end_date_time=None)
    seed.schedule(weekly["id"], "Tuesday")

    by_club = client.get("/activities", params={"clubId": club["id"]}).json()["activities"]
    recurring = client.get("/activities", params={"type": "recurring"}).json()["activities"]

    assert [a["slug"] for a in by_club] == ["club-run"]
    assert [a["slug"] for a in recurring] == ["weekly"]
    assert recurring[0]["schedules"][0]["day_of_week"] == "Tuesday"


def test_activity_owned_through_club_is_visible(client, seed):
    organizer = seed.organizer()
    club = seed.club(organizer["id"])
    seed.activity(None, slug="club-owned", club_id=club["id"])

    response = client.get("/activities/club-owned")

    assert response.status_code == 200
    assert response.json()["activity"]["club"]["name"] == "Morning Club"


def test_activity_detail(client, seed):
    organizer = seed.organizer()
    seed.activity(organizer["id"])

    response = client.get("/activities/sunrise-yoga")

    assert response.status_code == 200
    assert response.json()["activity"]["current_status"] == "upcoming"
    assert client.get("/activities/unknown").status_code == 404


def test_activity_detail_of_other_organizer_is_404(client, seed):
    seed.organizer()
    other = seed.organizer(domain="other.example", secret_key="evk_other", email="other@studio.example")
    seed.activity(other["id"], slug="theirs")

    assert client.get("/activities/theirs").status_code == 404


def test_cancel_one_time_activity(client, seed):
    organizer = seed.organizer()
    seed.activity(organizer["id"])

    response = client.patch("/activities/sunrise-yoga/status", headers=HEADERS, json={"status": "canceled"})

    assert response.status_code == 200
    assert response.json()["message"] == "Status updated successfully"
    assert response.json()["activity"]["current_status"] == "canceled"
    register = client.post(
        "/activities/sunrise-yoga/register",
        json={"firstName": "Asha", "lastName": "Rao", "email": "asha@example.com"},
    )
    assert register.status_code == 403


def test_status_of_recurring_activity_cannot_be_set(client, seed):
    organizer = seed.organizer()
    seed.activity(organizer["id"], slug="weekly", type="recurring", start_date_time=None, end_date_time=None)

    response = client.patch("/activities/weekly/status", headers=HEADERS, json={"status": "live"})

    assert response.status_code == 400


def test_invalid_status_value_is_400(client, seed):
    organizer = seed.organizer()
    seed.activity(organizer["id"])

    response = client.patch("/activities/sunrise-yoga/status", headers=HEADERS, json={"status": "paused"})

    assert response.status_code == 400


def test_delete_activity_is_soft(client, seed):
    organizer = seed.organizer()
    activity = seed.activity(organizer["id"])

    response = client.delete("/activities/sunrise-yoga", headers=HEADERS)

    assert response.status_code == 200
    assert client.get("/activities/sunrise-yoga").status_code == 404
    assert client.delete("/activities/sunrise-yoga", headers=HEADERS).status_code == 404
    row = seed.fetch("SELECT * FROM activities WHERE id = ?", activity["id"])
    assert row["deleted_at"] is not None
    assert row["is_active"] == 0


# ----------------------------------------------------------------------
# Organizer registrations overview


def test_organizer_registrations_grouped_by_activity(client, seed):
    organizer = seed.organizer()
    seed.activity(organizer["id"], slug="booked")
    seed.activity(organizer["id"], slug="empty")
    client.post(
        "/activities/booked/register",
        json={"firstName": "Asha", "lastName": "Rao", "email": "asha@example.com", "ticketCount": 2},
    )

    response = client.get("/organizer/registrations", headers=HEADERS)

    assert response.status_code == 200
    groups = {group["activity_slug"]: group["registrations"] for group in response.json()}
    assert set(groups) == {"booked", "empty"}
    assert groups["empty"] == []
    assert groups["booked"][0]["ticket_count"] == 2
    assert groups["booked"][0]["email"] == "asha@example.com"
