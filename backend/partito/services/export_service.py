"""Calendar and guest-list exports: ICS files, CSV, and add-to-calendar links."""
import csv
import io
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from urllib.parse import quote, urlencode

from ics import Calendar
from ics import Event as IcsEvent

from partito.config import settings
from partito.services.timezones import ensure_utc, parse_instant

ICS_PRODID = "-//Partito//partito.org//EN"
CSV_BASE_HEADERS = ["Name", "Email", "Status", "Plus Ones", "Dietary Note", "RSVP Date"]

_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_NEWLINES_RE = re.compile(r"[\r\n]+")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def strip_html(text: Optional[str]) -> str:
    return _TAG_RE.sub("", text or "")


def shareable_event_url(slug: str) -> str:
    """Link handed to guests; crawlers get Open Graph HTML from it."""
    return f"{settings.SHARE_URL.rstrip('/')}/e/{slug}"


def direct_event_url(slug: str) -> str:
    return f"{settings.SITE_URL.rstrip('/')}/e/{slug}"


def edit_event_url(slug: str, edit_token: str) -> str:
    return f"{settings.SITE_URL.rstrip('/')}/e/{slug}/edit?token={edit_token}"


def _location_text(event) -> Optional[str]:
    if not event.address:
        return None
    return f"{event.venue_name}, {event.address}" if event.venue_name else event.address


def _compact_utc(value) -> str:
    """``20250301T190000Z`` form used by Google Calendar links."""
    return ensure_utc(parse_instant(value)).strftime("%Y%m%dT%H%M%SZ")


# ---------------------------------------------------------------------------
# ICS
# ---------------------------------------------------------------------------
def generate_ics(event, now: Optional[datetime] = None) -> str:
    """Single-VEVENT calendar for ``event`` (times written in UTC)."""
    calendar = Calendar(creator=ICS_PRODID)

    entry = IcsEvent()
    entry.uid = f"{event.id}@partito.org"
    entry.name = event.title
    entry.begin = ensure_utc(parse_instant(event.start_time))
    if event.end_time:
        entry.end = ensure_utc(parse_instant(event.end_time))
    entry.created = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)

    if event.description:
        entry.description = strip_html(event.description)

    location = _location_text(event)
    if location:
        entry.location = location

    if event.virtual_link:
        entry.url = event.virtual_link

    calendar.events.add(entry)
    return calendar.serialize()


# ---------------------------------------------------------------------------
# Add-to-calendar links
# ---------------------------------------------------------------------------
def google_calendar_url(event) -> str:
    end = event.end_time or event.start_time
    params = {
        "action": "TEMPLATE",
        "text": event.title,
        "dates": f"{_compact_utc(event.start_time)}/{_compact_utc(end)}",
    }
    if event.description:
        params["details"] = strip_html(event.description)
    location = _location_text(event)
    if location:
        params["location"] = location
    return f"https://calendar.google.com/calendar/render?{urlencode(params)}"


def outlook_url(event) -> str:
    end = event.end_time or event.start_time
    params = {
        "path": "/calendar/action/compose",
        "rru": "addevent",
        "subject": event.title,
        "startdt": ensure_utc(parse_instant(event.start_time)).isoformat(),
        "enddt": ensure_utc(parse_instant(end)).isoformat(),
    }
    if event.description:
        params["body"] = strip_html(event.description)
    location = _location_text(event)
    if location:
        params["location"] = location
    return f"https://outlook.live.com/calendar/0/deeplink/compose?{urlencode(params)}"


def apple_calendar_url(event) -> str:
    """webcal:// subscription to this API's ICS endpoint."""
    feed = f"{settings.CALENDAR_FEED_URL.rstrip('/')}/api/events/{event.slug}/calendar.ics"
    return re.sub(r"^https?://", "webcal://", feed)


def maps_url(address: str, ios: bool = False) -> str:
    encoded = quote(address, safe="")
    if ios:
        return f"maps://maps.apple.com/?q={encoded}"
    return f"https://www.google.com/maps/search/?api=1&query={encoded}"


def calendar_links(event) -> dict[str, str]:
    links = {
        "google": google_calendar_url(event),
        "outlook": outlook_url(event),
        "apple": apple_calendar_url(event),
        "ics": f"/api/events/{event.slug}/calendar.ics",
    }
    return links


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------
def sanitize_csv_cell(value: Any) -> str:
    text = "" if value is None else str(value)
    text = _NEWLINES_RE.sub(" ", text)
    return _CONTROL_RE.sub("", text)


def _status_value(status) -> str:
    return getattr(status, "value", status) or ""


def guests_csv(rsvps: Iterable, custom_questions: Optional[list[dict]] = None) -> str:
    """Guest list as CSV with every cell quoted; one column per custom question."""
    questions = custom_questions or []
    headers = CSV_BASE_HEADERS + [q.get("label", "") for q in questions]

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([sanitize_csv_cell(h) for h in headers])

    for rsvp in rsvps:
        created = ensure_utc(rsvp.created_at).date().isoformat() if rsvp.created_at else ""
        row = [
            rsvp.name,
            rsvp.email,
            _status_value(rsvp.status),
            rsvp.plus_ones or 0,
            rsvp.dietary_note,
            created,
        ]
        answers = rsvp.custom_answers or {}
        for question in questions:
            answer = answers.get(question.get("id"))
            row.append("" if answer is None else str(answer))
        writer.writerow([sanitize_csv_cell(cell) for cell in row])

    return buffer.getvalue()


def csv_filename(title: str) -> str:
    slug = _SLUG_RE.sub("-", title.lower()).strip("-")
    return f"{slug or 'event'}-guests.csv"
