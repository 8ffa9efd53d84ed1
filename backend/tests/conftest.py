"""Pytest fixtures: SQLite database for fast, isolated tests."""
from datetime import datetime, timedelta, timezone
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from partito.database import Base, get_db
from partito.main import app
from partito.services.notification_service import Mailer, get_mailer

# Import all models so they register with Base.metadata
from partito.models.event import Event                # noqa: F401
from partito.models.rsvp import Rsvp                  # noqa: F401
from partito.models.event_update import EventUpdate   # noqa: F401
from partito.models.rate_limit import RateLimit       # noqa: F401

SQLITE_URL = "sqlite:///./test.db"


class FakeMailer(Mailer):
    """Records messages instead of calling the email API."""

    def __init__(self):
        super().__init__(api_key="test-key")
        self.sent = []

    def send(self, to, subject, html, reply_to=None):
        self.sent.append({"to": to, "subject": subject, "html": html, "reply_to": reply_to})
        return True


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session, closed after the test."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def mailer():
    return FakeMailer()


@pytest.fixture(scope="function")
def client(db_engine, mailer):
    """FastAPI TestClient with the database and mailer dependencies overridden."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers: create records via the API, return the response JSON dict
# ---------------------------------------------------------------------------
def future_wall_clock(days: int = 7, hour: int = 19) -> str:
    """Naive ISO wall-clock string ``days`` from now at ``hour``:00."""
    day = datetime.now(timezone.utc).date() + timedelta(days=days)
    return f"{day.isoformat()}T{hour:02d}:00:00"


def create_test_event(client: TestClient, **overrides) -> dict:
    """Helper: POST /api/events and return response JSON (includes edit_token)."""
    payload = {
        "title": "Summer Picnic",
        "host_name": "Alex",
        "host_email": "host@example.com",
        "start_time": future_wall_clock(),
        "timezone": "America/New_York",
        "location_type": "in_person",
        "venue_name": "Prospect Park",
        "address": "95 Prospect Park West, Brooklyn, NY",
    }
    payload.update(overrides)
    resp = client.post("/api/events", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_rsvp(client: TestClient, slug: str, name: str = "Guest", **overrides):
    """Helper: POST /api/events/{slug}/rsvps and return the raw response."""
    payload = {"name": name, "status": "going"}
    payload.update(overrides)
    return client.post(f"/api/events/{slug}/rsvps", json=payload)
