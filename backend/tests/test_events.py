"""Tests for Event CRUD and host authorization.

Covers:
- Event create (slug, edit token, timezone resolution, validation)
- Creation rate limit -> 429
- Public view hides host-only data and applies visibility policies
- Edit token gates manage / update / cancel / delete
- Password gate
- Edit-link recovery, contact form, host updates
- Retention purge
"""
import re
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from partito.config import settings
from partito.models.event import Event
from partito.services import event_service
from partito.services.event_service import clean_slug, generate_slug
from partito.services.timezones import format_wall_clock
from tests.conftest import create_test_event, create_test_rsvp, future_wall_clock


class TestEventCreate:
    """Event creation and initial state."""

    def test_create_event(self, client):
        data = create_test_event(client, title="Summer Picnic")
        assert data["slug"] == "summer-picnic"
        assert re.fullmatch(r"[0-9a-f]{64}", data["edit_token"])
        assert data["status"] == "active"
        assert data["has_password"] is False
        assert data["auto_delete_days"] == 30

    def test_wall_clock_resolved_in_event_timezone(self, client):
        wall = future_wall_clock(days=10, hour=19)
        data = create_test_event(client, start_time=wall, timezone="America/New_York")
        local = format_wall_clock(data["start_time"], "America/New_York")
        assert local.isoformat() == wall[:16]

    def test_aware_start_time_kept_as_instant(self, client):
        start = (datetime.now(timezone.utc) + timedelta(days=3)).replace(microsecond=0)
        data = create_test_event(client, start_time=start.isoformat(), timezone="Asia/Tokyo")
        stored = datetime.fromisoformat(data["start_time"].replace("Z", "+00:00"))
        assert stored == start

    def test_duplicate_title_gets_suffix(self, client):
        first = create_test_event(client, title="Book Club")
        second = create_test_event(client, title="Book Club")
        assert first["slug"] == "book-club"
        assert re.fullmatch(r"book-club-[a-z0-9]{4}", second["slug"])

    def test_requested_slug_taken(self, client):
        create_test_event(client, slug="my-party")
        resp = client.post("/api/events", json={
            "title": "Another", "host_name": "Sam", "start_time": future_wall_clock(), "slug": "my-party",
        })
        assert resp.status_code == 409

    def test_end_before_start_rejected(self, client):
        resp = client.post("/api/events", json={
            "title": "Backwards",
            "host_name": "Sam",
            "start_time": future_wall_clock(hour=20),
            "end_time": future_wall_clock(hour=18),
        })
        assert resp.status_code == 400

    def test_unknown_timezone_rejected(self, client):
        resp = client.post("/api/events", json={
            "title": "Lost", "host_name": "Sam", "start_time": future_wall_clock(), "timezone": "Moon/Base",
        })
        assert resp.status_code == 400

    def test_blank_title_rejected(self, client):
        resp = client.post("/api/events", json={"title": "   ", "host_name": "Sam", "start_time": future_wall_clock()})
        assert resp.status_code == 400

    def test_zero_capacity_rejected(self, client):
        resp = client.post("/api/events", json={
            "title": "Tiny", "host_name": "Sam", "start_time": future_wall_clock(), "capacity": 0,
        })
        assert resp.status_code == 400

    def test_rate_limit(self, client):
        for i in range(settings.EVENT_RATE_LIMIT_MAX):
            create_test_event(client, title=f"Event {i}")
        resp = client.post("/api/events", json={"title": "One Too Many", "host_name": "Sam", "start_time": future_wall_clock()})
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == str(settings.EVENT_RATE_LIMIT_WINDOW_MINUTES * 60)

    def test_rate_limit_is_per_ip(self, client):
        for i in range(settings.EVENT_RATE_LIMIT_MAX):
            create_test_event(client, title=f"Event {i}")
        resp = client.post(
            "/api/events",
            json={"title": "Elsewhere", "host_name": "Sam", "start_time": future_wall_clock()},
            headers={"x-forwarded-for": "203.0.113.9"},
        )
        assert resp.status_code == 201


class TestPublicView:
    """What guests see."""

    def test_hides_host_only_fields(self, client):
        event = create_test_event(client, password="secret")
        data = client.get(f"/api/events/{event['slug']}").json()
        assert "edit_token" not in data
        assert "host_email" not in data
        assert "password_hash" not in data
        assert data["has_password"] is True

    def test_unknown_slug(self, client):
        assert client.get("/api/events/nope").status_code == 404

    def test_area_visibility(self, client):
        event = create_test_event(client, location_visibility="area")
        data = client.get(f"/api/events/{event['slug']}").json()
        assert data["address"] == "Brooklyn, NY"

    def test_hidden_location(self, client):
        event = create_test_event(client, location_visibility="hidden")
        data = client.get(f"/api/events/{event['slug']}").json()
        assert data["address"] is None
        assert data["venue_name"] is None

    def test_rsvp_only_virtual_link(self, client):
        event = create_test_event(
            client,
            location_type="virtual",
            virtual_link="https://meet.example.com/abc",
            virtual_link_visibility="rsvp_only",
        )
        slug = event["slug"]
        assert client.get(f"/api/events/{slug}").json()["virtual_link"] is None

        fingerprint = create_test_rsvp(client, slug, name="Jo").json()["rsvp"]["fingerprint"]
        data = client.get(f"/api/events/{slug}", params={"fingerprint": fingerprint}).json()
        assert data["virtual_link"] == "https://meet.example.com/abc"

    def test_capacity_summary(self, client):
        event = create_test_event(client, capacity=5, allow_plus_ones=True, max_plus_ones=2)
        create_test_rsvp(client, event["slug"], name="Jo", plus_ones=2)
        data = client.get(f"/api/events/{event['slug']}").json()
        assert data["attendee_count"] == 3
        assert data["remaining_capacity"] == 2
        assert data["is_at_capacity"] is False


class TestHostActions:
    """The edit token is the only credential for host actions."""

    def test_manage_requires_token(self, client):
        event = create_test_event(client)
        assert client.get(f"/api/events/{event['slug']}/manage", params={"token": "wrong"}).status_code == 403
        resp = client.get(f"/api/events/{event['slug']}/manage", params={"token": event["edit_token"]})
        assert resp.status_code == 200
        assert resp.json()["host_email"] == "host@example.com"

    def test_update_event(self, client):
        event = create_test_event(client)
        resp = client.patch(
            f"/api/events/{event['slug']}",
            params={"token": event["edit_token"]},
            json={"title": "Autumn Picnic", "capacity": 20},
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Autumn Picnic"
        assert resp.json()["capacity"] == 20
        assert resp.json()["edit_token"] == event["edit_token"]

    def test_update_wrong_token(self, client):
        event = create_test_event(client)
        resp = client.patch(f"/api/events/{event['slug']}", params={"token": "x" * 64}, json={"title": "Hijack"})
        assert resp.status_code == 403

    def test_update_slug_conflict(self, client):
        create_test_event(client, title="Taken")
        event = create_test_event(client, title="Mine")
        resp = client.patch(f"/api/events/{event['slug']}", params={"token": event["edit_token"]}, json={"slug": "taken"})
        assert resp.status_code == 409

    def test_update_slug(self, client):
        event = create_test_event(client, title="Mine")
        resp = client.patch(f"/api/events/{event['slug']}", params={"token": event["edit_token"]}, json={"slug": "New Name"})
        assert resp.json()["slug"] == "new-name"
        assert client.get("/api/events/new-name").status_code == 200

    def test_cancel_event(self, client):
        event = create_test_event(client)
        url = f"/api/events/{event['slug']}/cancel"
        resp = client.post(url, params={"token": event["edit_token"]})
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert client.post(url, params={"token": event["edit_token"]}).status_code == 400

    def test_cancelled_event_refuses_rsvps(self, client):
        event = create_test_event(client)
        client.post(f"/api/events/{event['slug']}/cancel", params={"token": event["edit_token"]})
        assert create_test_rsvp(client, event["slug"]).status_code == 400

    def test_delete_event_cascades(self, client, db):
        event = create_test_event(client)
        create_test_rsvp(client, event["slug"], name="Jo")
        resp = client.delete(f"/api/events/{event['slug']}", params={"token": event["edit_token"]})
        assert resp.status_code == 204
        assert client.get(f"/api/events/{event['slug']}").status_code == 404
        assert db.query(Event).count() == 0

    def test_delete_requires_token(self, client):
        event = create_test_event(client)
        assert client.delete(f"/api/events/{event['slug']}", params={"token": "nope"}).status_code == 403


class TestPasswordGate:
    """Passwords are checked server-side."""

    def test_password_info_and_verify(self, client):
        event = create_test_event(client, password="open sesame", password_hint="the classic")
        slug = event["slug"]
        assert client.get(f"/api/events/{slug}/password").json() == {"has_password": True, "hint": "the classic"}
        assert client.post(f"/api/events/{slug}/password/verify", json={"password": "open sesame"}).json() == {"valid": True}
        assert client.post(f"/api/events/{slug}/password/verify", json={"password": "wrong"}).json() == {"valid": False}

    def test_no_password(self, client):
        slug = create_test_event(client)["slug"]
        assert client.get(f"/api/events/{slug}/password").json() == {"has_password": False, "hint": None}
        assert client.post(f"/api/events/{slug}/password/verify", json={"password": ""}).json() == {"valid": True}

    def test_clear_password(self, client):
        event = create_test_event(client, password="secret")
        resp = client.patch(f"/api/events/{event['slug']}", params={"token": event["edit_token"]}, json={"password": ""})
        assert resp.json()["has_password"] is False

    def test_overlong_password_rejected(self, client):
        resp = client.post("/api/events", json={
            "title": "Secret Party", "host_name": "Sam", "start_time": future_wall_clock(), "password": "p" * 80,
        })
        assert resp.status_code == 400

    def test_overlong_password_rejected_on_update(self, client):
        event = create_test_event(client, password="secret")
        resp = client.patch(
            f"/api/events/{event['slug']}",
            params={"token": event["edit_token"]},
            json={"password": "é" * 40},
        )
        assert resp.status_code == 400
        slug = event["slug"]
        assert client.post(f"/api/events/{slug}/password/verify", json={"password": "secret"}).json() == {"valid": True}

    def test_password_at_byte_limit(self, client):
        event = create_test_event(client, password="p" * 72)
        verify = client.post(f"/api/events/{event['slug']}/password/verify", json={"password": "p" * 72})
        assert verify.json() == {"valid": True}


class TestSlugAvailability:
    def test_available_and_taken(self, client):
        create_test_event(client, title="Game Night")
        assert client.get("/api/slugs/game-night/available").json() == {"slug": "game-night", "available": False}
        assert client.get("/api/slugs/Movie Night/available").json() == {"slug": "movie-night", "available": True}


class TestRecovery:
    """Edit-link recovery never reveals whether an event exists."""

    def test_matching_email_sends_link(self, client, mailer):
        event = create_test_event(client, host_email="Host@Example.com")
        resp = client.post("/api/recover", json={
            "slug": f"https://partito.org/e/{event['slug']}",
            "email": "host@example.com",
        })
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert len(mailer.sent) == 1
        assert mailer.sent[0]["to"] == ["Host@Example.com"]
        assert event["edit_token"] in mailer.sent[0]["html"]

    def test_mismatch_is_silent(self, client, mailer):
        event = create_test_event(client)
        resp = client.post("/api/recover", json={"slug": event["slug"], "email": "someone@else.com"})
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert mailer.sent == []

    def test_unknown_slug_is_silent(self, client, mailer):
        resp = client.post("/api/recover", json={"slug": "ghost", "email": "host@example.com"})
        assert resp.json()["success"] is True
        assert mailer.sent == []


class TestContact:
    def test_contact_form(self, client, mailer):
        resp = client.post("/api/contact", json={
            "name": "Pat", "email": "pat@example.com", "subject": "Hi", "message": "Love it",
        })
        assert resp.status_code == 200
        assert mailer.sent[0]["to"] == [settings.CONTACT_EMAIL]
        assert mailer.sent[0]["reply_to"] == "pat@example.com"

    def test_contact_invalid_email(self, client, mailer):
        resp = client.post("/api/contact", json={"name": "Pat", "email": "nope", "message": "Hi"})
        assert resp.status_code == 400
        assert mailer.sent == []


class TestEventUpdates:
    """Host broadcasts to guests."""

    def test_update_goes_to_matching_guests(self, client, mailer):
        event = create_test_event(client)
        slug = event["slug"]
        create_test_rsvp(client, slug, name="Going Guest", email="going@example.com")
        create_test_rsvp(client, slug, name="Maybe Guest", email="maybe@example.com", status="maybe")
        create_test_rsvp(client, slug, name="Quiet Guest", email="quiet@example.com", notifications_enabled=False)
        mailer.sent.clear()

        resp = client.post(
            f"/api/events/{slug}/updates",
            params={"token": event["edit_token"]},
            json={"subject": "Bring snacks", "body": "See you there", "recipient_filter": "going"},
        )
        assert resp.status_code == 201
        assert resp.json()["recipient_count"] == 2
        assert [m["to"] for m in mailer.sent] == [["going@example.com"]]

        history = client.get(f"/api/events/{slug}/updates", params={"token": event["edit_token"]}).json()
        assert [u["subject"] for u in history] == ["Bring snacks"]

    def test_update_requires_token(self, client):
        slug = create_test_event(client)["slug"]
        resp = client.post(f"/api/events/{slug}/updates", params={"token": "nope"}, json={"subject": "x", "body": "y"})
        assert resp.status_code == 403


class TestPurge:
    """Retention purge of finished events."""

    def test_purge_expired(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_TOKEN", "admin-secret")
        old_start = (datetime.now(timezone.utc) - timedelta(days=45)).isoformat()
        create_test_event(client, title="Old", start_time=old_start, auto_delete_days=30)
        create_test_event(client, title="Recent")

        resp = client.post("/api/admin/purge", headers={"x-admin-token": "admin-secret"})
        assert resp.status_code == 200
        assert resp.json() == {"deleted": 1}
        assert client.get("/api/events/old").status_code == 404
        assert client.get("/api/events/recent").status_code == 200

    def test_purge_requires_admin_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_TOKEN", "admin-secret")
        assert client.post("/api/admin/purge").status_code == 403
        assert client.post("/api/admin/purge", headers={"x-admin-token": "guess"}).status_code == 403

    def test_purge_disabled_without_configured_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_TOKEN", "")
        assert client.post("/api/admin/purge", headers={"x-admin-token": ""}).status_code == 403


class TestHealth:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}


class TestEventServiceHelpers:
    """Service-level helpers not exposed as their own route."""

    def test_get_event_by_token(self, client, db):
        created = create_test_event(client)
        assert event_service.get_event_by_token(db, created["edit_token"]).slug == created["slug"]
        with pytest.raises(HTTPException):
            event_service.get_event_by_token(db, "")

    def test_generate_slug(self):
        assert generate_slug("  Ana's 30th Birthday!! ") == "ana-s-30th-birthday"
        assert generate_slug("x" * 80) == "x" * 50
        assert generate_slug("Party", "ab12") == "party-ab12"
        assert generate_slug("!!!", "ab12") == "ab12"

    def test_clean_slug(self):
        assert clean_slug("https://partito.org/e/my-party/edit?token=abc") == "my-party"
        assert clean_slug(" my-party ") == "my-party"
