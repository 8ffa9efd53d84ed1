"""Core event service.

Responsibilities:
- Edit-token authorization: the token is the only credential for host actions
- Creation rate limiting per client IP
- Slug generation and uniqueness
- Wall-clock -> UTC resolution of start/end in the event's timezone
- Password gate (bcrypt)
- Public view shaping (location / virtual link visibility)
- Retention purge
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from partito.config import settings
from partito.models.event import Event, EventStatus, LocationVisibility, VirtualLinkVisibility
from partito.models.event_update import EventUpdate
from partito.models.rate_limit import RateLimit
from partito.models.rsvp import RsvpStatus
from partito.services import admission
from partito.services.timezones import ensure_utc, is_valid_timezone, to_utc
from partito.utils.security import (
    PASSWORD_MAX_BYTES, generate_edit_token, generate_slug_suffix, hash_password, tokens_match,
    verify_password,
)

logger = logging.getLogger(__name__)

EVENT_CREATION_ACTION = "event_creation"
MAX_SLUG_ATTEMPTS = 5
SLUG_MAX_LENGTH = 50
TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 10000

_SLUG_INVALID_RE = re.compile(r"[^a-z0-9]+")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(_EMAIL_RE.match(email))


def generate_slug(title: str, suffix: Optional[str] = None) -> str:
    slug = _SLUG_INVALID_RE.sub("-", title.lower()).strip("-")[:SLUG_MAX_LENGTH]
    if suffix:
        slug = f"{slug}-{suffix}" if slug else suffix
    return slug


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------
def check_rate_limit(db: Session, client_ip: str, action: str = EVENT_CREATION_ACTION) -> None:
    """Raise 429 once ``client_ip`` used up its allowance in the current window."""
    window = timedelta(minutes=settings.EVENT_RATE_LIMIT_WINDOW_MINUTES)
    window_start = datetime.now(timezone.utc) - window
    count = (
        db.query(RateLimit)
        .filter(
            RateLimit.ip_address == client_ip,
            RateLimit.action == action,
            RateLimit.created_at >= window_start,
        )
        .count()
    )
    logger.info("Rate limit check for %s: %d/%d", client_ip, count, settings.EVENT_RATE_LIMIT_MAX)
    if count >= settings.EVENT_RATE_LIMIT_MAX:
        retry_after = int(window.total_seconds())
        logger.warning("Rate limit exceeded for %s", client_ip)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "message": (
                    f"You can only create {settings.EVENT_RATE_LIMIT_MAX} events per hour. "
                    "Please try again later."
                ),
                "retry_after": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )


def _record_rate_limit(db: Session, client_ip: str, action: str = EVENT_CREATION_ACTION) -> None:
    db.add(RateLimit(ip_address=client_ip, action=action))


def cleanup_rate_limits(db: Session) -> int:
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.EVENT_RATE_LIMIT_WINDOW_MINUTES)
    deleted = db.query(RateLimit).filter(RateLimit.created_at < cutoff).delete(synchronize_session=False)
    db.commit()
    return deleted


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def _resolve_time(value: Optional[datetime], tz_name: str) -> Optional[datetime]:
    """Aware values are instants already; naive ones are wall clock in ``tz_name``."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc)
    return to_utc(value, tz_name) or value.replace(tzinfo=timezone.utc)


def _validate_custom_questions(questions: list[dict[str, Any]]) -> None:
    seen = set()
    for question in questions:
        if question["id"] in seen:
            raise _bad_request(f"Duplicate custom question id: {question['id']}")
        seen.add(question["id"])
        if not question.get("label", "").strip():
            raise _bad_request("Custom questions need a label")
        if question["type"] == "select" and not question.get("options"):
            raise _bad_request(f"Select question '{question['label']}' needs options")


def _validate_event_fields(values: dict[str, Any]) -> None:
    title = (values.get("title") or "").strip()
    if not title:
        raise _bad_request("Event title is required")
    if len(title) > TITLE_MAX_LENGTH:
        raise _bad_request(f"Title must be less than {TITLE_MAX_LENGTH} characters")
    if not (values.get("host_name") or "").strip():
        raise _bad_request("Host name is required")
    if values.get("description") and len(values["description"]) > DESCRIPTION_MAX_LENGTH:
        raise _bad_request(f"Description must be less than {DESCRIPTION_MAX_LENGTH} characters")
    if values.get("start_time") is None:
        raise _bad_request("Start time is required")
    if not is_valid_timezone(values.get("timezone")):
        raise _bad_request(f"Unknown timezone: {values.get('timezone')}")

    end_time = values.get("end_time")
    if end_time is not None and ensure_utc(end_time) <= ensure_utc(values["start_time"]):
        raise _bad_request("End time must be after start time")

    if values.get("host_email") and not is_valid_email(values["host_email"]):
        raise _bad_request("Invalid host email")
    if (values.get("max_plus_ones") or 0) < 0:
        raise _bad_request("max_plus_ones cannot be negative")
    if values.get("capacity") is not None and values["capacity"] < 1:
        raise _bad_request("Capacity must be at least 1")
    if values.get("auto_delete_days") is not None and values["auto_delete_days"] < 1:
        raise _bad_request("auto_delete_days must be at least 1")
    password = values.get("password")
    if password and len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise _bad_request(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    _validate_custom_questions(values.get("custom_questions") or [])


# ---------------------------------------------------------------------------
# Lookup and authorization
# ---------------------------------------------------------------------------
def get_event_by_slug(db: Session, slug: str) -> Event:
    event = db.query(Event).filter(Event.slug == slug).first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def get_event_by_token(db: Session, edit_token: str) -> Event:
    event = db.query(Event).filter(Event.edit_token == edit_token).first() if edit_token else None
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def check_edit_token(event: Event, edit_token: Optional[str]) -> None:
    """Only the holder of the edit token may act as host."""
    if not tokens_match(edit_token, event.edit_token):
        logger.warning("Rejected edit token for event %s", event.slug)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You need the edit link to manage this event.",
        )


def get_event_for_host(db: Session, slug: str, edit_token: Optional[str]) -> Event:
    event = get_event_by_slug(db, slug)
    check_edit_token(event, edit_token)
    return event


def is_slug_available(db: Session, slug: str, exclude_id: Optional[str] = None) -> bool:
    query = db.query(Event.id).filter(Event.slug == slug)
    if exclude_id:
        query = query.filter(Event.id != exclude_id)
    return query.first() is None


def _unique_slug(db: Session, title: str, requested: Optional[str]) -> str:
    if requested:
        slug = generate_slug(requested)
        if not slug:
            raise _bad_request("Slug must contain letters or numbers")
        if not is_slug_available(db, slug):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="That event URL is already taken")
        return slug

    slug = generate_slug(title) or generate_slug_suffix()
    for _ in range(MAX_SLUG_ATTEMPTS):
        if is_slug_available(db, slug):
            return slug
        slug = generate_slug(title, generate_slug_suffix())

    logger.error("Could not generate a unique slug for '%s'", title)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Failed to generate unique event URL",
    )


# ---------------------------------------------------------------------------
# Create / update / cancel / delete
# ---------------------------------------------------------------------------
def create_event(db: Session, data: dict[str, Any], client_ip: str) -> Event:
    """Create an event; ``data`` is an ``EventCreate`` dump."""
    check_rate_limit(db, client_ip)

    values = dict(data)
    values["timezone"] = values.get("timezone") or settings.DEFAULT_TIMEZONE
    if values.get("auto_delete_days") is None:
        values["auto_delete_days"] = settings.DEFAULT_AUTO_DELETE_DAYS
    values["start_time"] = _resolve_time(values.get("start_time"), values["timezone"])
    values["end_time"] = _resolve_time(values.get("end_time"), values["timezone"])
    _validate_event_fields(values)

    password = values.pop("password", None)
    requested_slug = values.pop("slug", None)
    values["title"] = values["title"].strip()
    values["host_name"] = values["host_name"].strip()

    event = Event(
        **values,
        slug=_unique_slug(db, values["title"], requested_slug),
        edit_token=generate_edit_token(),
        password_hash=hash_password(password) if password and password.strip() else None,
        status=EventStatus.active,
    )
    db.add(event)
    _record_rate_limit(db, client_ip)
    db.commit()
    db.refresh(event)
    logger.info("Created event '%s' (%s) with slug %s", event.title, event.id, event.slug)
    return event


_IMMUTABLE_FIELDS = {"id", "edit_token", "password_hash", "created_at", "updated_at"}
# Fields a host may clear by sending null; null is ignored for the rest.
_CLEARABLE_FIELDS = {
    "description", "cover_image", "host_email", "end_time", "venue_name", "address",
    "virtual_link", "capacity", "password", "password_hint",
}


def update_event(db: Session, event: Event, updates: dict[str, Any]) -> Event:
    """Apply a partial host update; the caller has already checked the edit token."""
    updates = {
        k: v for k, v in updates.items()
        if k not in _IMMUTABLE_FIELDS and (v is not None or k in _CLEARABLE_FIELDS)
    }

    if "slug" in updates:
        new_slug = generate_slug(updates["slug"] or "")
        if not new_slug:
            raise _bad_request("Slug must contain letters or numbers")
        if not is_slug_available(db, new_slug, exclude_id=event.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="That event URL is already taken")
        updates["slug"] = new_slug

    tz_name = updates.get("timezone") or event.timezone
    for field in ("start_time", "end_time"):
        if field in updates:
            updates[field] = _resolve_time(updates[field], tz_name)

    password_changed = "password" in updates
    password = updates.pop("password", None)

    merged = {column: getattr(event, column) for column in (
        "title", "host_name", "host_email", "description", "start_time", "end_time", "timezone",
        "max_plus_ones", "capacity", "auto_delete_days", "custom_questions",
    )}
    merged.update(updates)
    merged["password"] = password
    _validate_event_fields(merged)

    for field, value in updates.items():
        if hasattr(event, field):
            setattr(event, field, value)
    if password_changed:
        event.password_hash = hash_password(password) if password and password.strip() else None

    event.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(event)
    logger.info("Updated event %s fields: %s", event.slug, ", ".join(sorted(updates)) or "-")
    return event


def cancel_event(db: Session, event: Event) -> Event:
    """Soft-delete: the event stays reachable but stops taking RSVPs."""
    if event.status == EventStatus.cancelled:
        raise _bad_request("Event is already cancelled")
    event.status = EventStatus.cancelled
    event.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(event)
    logger.info("Cancelled event %s", event.slug)
    return event


def delete_event(db: Session, event: Event) -> None:
    """Hard delete; RSVPs and updates go with it."""
    slug = event.slug
    db.delete(event)
    db.commit()
    logger.info("Deleted event %s", slug)


# ---------------------------------------------------------------------------
# Public view
# ---------------------------------------------------------------------------
def area_only(address: Optional[str]) -> Optional[str]:
    """Last two comma-separated parts of an address (e.g. "Brooklyn, NY")."""
    if not address:
        return address
    return ",".join(address.split(",")[-2:]).strip()


def public_event_view(event: Event, viewer_is_going: bool = False) -> dict[str, Any]:
    """Guest-facing fields with location and virtual-link policies applied."""
    going = [r for r in event.rsvps if r.status == RsvpStatus.going]
    view = {
        column.name: getattr(event, column.name)
        for column in Event.__table__.columns
        if column.name not in ("edit_token", "password_hash", "password_hint", "host_email")
    }
    view["has_password"] = event.has_password

    if event.location_visibility == LocationVisibility.hidden:
        view["address"] = None
        view["venue_name"] = None
    elif event.location_visibility == LocationVisibility.area:
        view["address"] = area_only(event.address)

    if event.virtual_link_visibility == VirtualLinkVisibility.rsvp_only and not viewer_is_going:
        view["virtual_link"] = None

    view["attendee_count"] = admission.attendee_count(going)
    view["remaining_capacity"] = admission.remaining_capacity(event.capacity, going)
    view["is_at_capacity"] = admission.is_at_capacity(event.capacity, going)
    return view


def viewer_is_going(event: Event, fingerprint: Optional[str]) -> bool:
    if not fingerprint:
        return False
    return any(
        r.status == RsvpStatus.going and tokens_match(fingerprint, r.fingerprint) for r in event.rsvps
    )


# ---------------------------------------------------------------------------
# Password gate
# ---------------------------------------------------------------------------
def password_info(event: Event) -> dict[str, Any]:
    return {"has_password": event.has_password, "hint": event.password_hint if event.has_password else None}


def verify_event_password(event: Event, password: str) -> bool:
    """Server-side check so the hash never reaches the browser."""
    if not event.has_password:
        return True
    valid = verify_password(password, event.password_hash)
    if not valid:
        logger.info("Wrong password attempt for event %s", event.slug)
    return valid


# ---------------------------------------------------------------------------
# Edit link recovery
# ---------------------------------------------------------------------------
def clean_slug(slug_or_url: str) -> str:
    """Accept a bare slug or any URL containing ``/e/<slug>``."""
    cleaned = slug_or_url.strip()
    if "/e/" in cleaned:
        cleaned = cleaned.split("/e/")[-1]
    cleaned = cleaned.split("?")[0].strip("/")
    if "/" in cleaned:
        cleaned = cleaned.split("/")[0]
    return cleaned


def find_event_for_recovery(db: Session, slug_or_url: str, email: str) -> Optional[Event]:
    """The event only if ``email`` matches its host email (case-insensitive)."""
    slug = clean_slug(slug_or_url)
    event = db.query(Event).filter(Event.slug == slug).first()
    if not event:
        logger.info("Recovery requested for unknown slug %s", slug)
        return None
    if not event.host_email or event.host_email.lower() != email.strip().lower():
        logger.info("Recovery email mismatch for event %s", slug)
        return None
    return event


# ---------------------------------------------------------------------------
# Host updates
# ---------------------------------------------------------------------------
def update_recipients(event: Event, recipient_filter: str) -> tuple[int, list[str]]:
    """(matching RSVP count, emails of those who accept notifications)."""
    matching = [
        r for r in event.rsvps
        if recipient_filter == "all" or r.status == RsvpStatus(recipient_filter)
    ]
    emails = [r.email for r in matching if r.email and r.notifications_enabled]
    return len(matching), emails


def create_event_update(db: Session, event: Event, subject: str, body: str, recipient_filter: str) -> tuple[EventUpdate, list[str]]:
    if not subject.strip() or not body.strip():
        raise _bad_request("Please fill in subject and message")
    count, emails = update_recipients(event, recipient_filter)
    update = EventUpdate(
        event_id=event.id,
        subject=subject.strip(),
        body=body,
        recipient_filter=recipient_filter,
        recipient_count=count,
    )
    db.add(update)
    db.commit()
    db.refresh(update)
    logger.info("Recorded update '%s' for event %s (%d recipients)", update.subject, event.slug, count)
    return update, emails


def list_event_updates(db: Session, event: Event) -> list[EventUpdate]:
    return (
        db.query(EventUpdate)
        .filter(EventUpdate.event_id == event.id)
        .order_by(EventUpdate.sent_at.desc())
        .all()
    )


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------
def purge_expired_events(db: Session, now: Optional[datetime] = None) -> int:
    """Delete events whose end (or start) is older than their auto_delete_days."""
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    expired = []
    for event in db.query(Event).all():
        finished_at = ensure_utc(event.end_time or event.start_time)
        if finished_at + timedelta(days=event.auto_delete_days) < now:
            expired.append(event)

    for event in expired:
        db.delete(event)
    db.commit()
    if expired:
        logger.info("Purged %d expired event(s)", len(expired))
    return len(expired)
