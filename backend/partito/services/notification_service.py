"""Transactional email through the Resend REST API.

Every send is best-effort: a missing API key or a failed HTTP call is logged
and reported as ``False``; it never fails the request that triggered it.
Callers schedule these functions as FastAPI background tasks and pass plain
values, since the request's database session is closed by then.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote

import httpx

from partito.config import settings
from partito.services.export_service import direct_event_url, edit_event_url, shareable_event_url
from partito.services.timezones import ensure_utc, format_date, format_time
from partito.templating import render

logger = logging.getLogger(__name__)

_STATUS_DISPLAY = {
    "going": ("is going", "✅"),
    "maybe": ("might attend", "🤔"),
    "not_going": ("can't make it", "❌"),
}
_WAITLIST_DISPLAY = ("added to waitlist", "⏳")


class Mailer:
    """Thin Resend client."""

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.resend.com/emails",
        sender: str = "Partito <noreply@partito.org>",
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "Mailer":
        return cls(
            api_key=settings.RESEND_API_KEY,
            api_url=settings.RESEND_API_URL,
            sender=settings.EMAIL_FROM,
            timeout=settings.EMAIL_TIMEOUT_SECONDS,
        )

    def send(self, to: list[str], subject: str, html: str, reply_to: Optional[str] = None) -> bool:
        if not self.api_key:
            logger.info("Email not configured; skipping '%s' to %d recipient(s)", subject, len(to))
            return False

        payload = {"from": self.sender, "to": to, "subject": subject, "html": html}
        if reply_to:
            payload["reply_to"] = reply_to

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPError:
            logger.exception("Failed to send email '%s'", subject)
            return False

        logger.info("Sent email '%s' to %d recipient(s)", subject, len(to))
        return True


def get_mailer() -> Mailer:
    """FastAPI dependency (overridden in tests)."""
    return Mailer.from_settings()


def notify_rsvp(
    mailer: Mailer,
    *,
    host_email: Optional[str],
    notify_on_rsvp: bool,
    event_title: str,
    event_slug: str,
    guest_name: str,
    guest_email: Optional[str],
    status: str,
    plus_ones: int,
    dietary_note: Optional[str],
    was_waitlisted: bool,
    created_at: datetime,
) -> bool:
    """Tell the host about a new RSVP."""
    if not notify_on_rsvp or not host_email:
        logger.debug("RSVP notifications disabled or no host email for %s", event_slug)
        return False

    age = datetime.now(timezone.utc) - ensure_utc(created_at)
    if age > timedelta(minutes=settings.NOTIFICATION_MAX_AGE_MINUTES):
        logger.info("RSVP for %s too old for notification", event_slug)
        return False

    display, emoji = _WAITLIST_DISPLAY if was_waitlisted else _STATUS_DISPLAY.get(status, ("responded", "📬"))

    html = render(
        "email/rsvp.html",
        event_title=event_title,
        guest_name=guest_name,
        display=display,
        plus_ones=plus_ones,
        guest_email=guest_email,
        dietary_note=dietary_note,
        link=f"{settings.SITE_URL.rstrip('/')}/e/{quote(event_slug)}/edit",
        link_label="View All RSVPs",
    )
    return mailer.send([host_email], f"{emoji} New RSVP: {guest_name} {display}", html)


def notify_waitlist_promotion(
    mailer: Mailer,
    *,
    guest_email: Optional[str],
    guest_name: str,
    event_title: str,
    event_slug: str,
    host_name: Optional[str],
    start_time: datetime,
    event_timezone: Optional[str],
    location_type: str,
    venue_name: Optional[str],
    address: Optional[str],
) -> bool:
    """Tell a guest they moved off the waitlist."""
    if not guest_email:
        logger.info("Promoted guest has no email; skipping notification for %s", event_slug)
        return False

    place = None
    if location_type == "in_person":
        place = ", ".join(part for part in (venue_name, address) if part) or None

    html = render(
        "email/promotion.html",
        guest_name=guest_name,
        event_title=event_title,
        when=f"{format_date(start_time, event_timezone)} at {format_time(start_time, event_timezone)}",
        place=place,
        virtual=location_type == "virtual",
        host_name=host_name,
        link=direct_event_url(event_slug),
        link_label="View Event",
    )
    return mailer.send([guest_email], f"🎉 You're in! Spot confirmed for {event_title}", html)


def send_recovery_email(
    mailer: Mailer,
    *,
    host_email: str,
    host_name: Optional[str],
    event_title: str,
    event_slug: str,
    edit_token: str,
) -> bool:
    html = render(
        "email/recovery.html",
        host_name=host_name,
        event_title=event_title,
        link=edit_event_url(event_slug, edit_token),
        link_label="Manage Your Event",
    )
    return mailer.send([host_email], f'Your edit link for "{event_title}"', html)


def send_contact_message(
    mailer: Mailer,
    *,
    name: str,
    email: str,
    subject: Optional[str],
    message: str,
) -> bool:
    html = render(
        "email/contact.html",
        name=name,
        email=email,
        subject=subject or "General inquiry",
        message=message,
    )
    return mailer.send(
        [settings.CONTACT_EMAIL],
        f"[Partito Contact] {subject or 'General inquiry'}",
        html,
        reply_to=email,
    )


def send_event_update(
    mailer: Mailer,
    *,
    recipients: list[str],
    event_title: str,
    event_slug: str,
    subject: str,
    body: str,
) -> int:
    """Send a host update to each recipient separately; returns how many went out."""
    html = render(
        "email/update.html",
        subject=subject,
        body=body,
        event_title=event_title,
        link=shareable_event_url(event_slug),
        link_label="View Event",
    )
    sent = 0
    for recipient in recipients:
        if mailer.send([recipient], f"{subject} · {event_title}", html):
            sent += 1
    logger.info("Event update for %s delivered to %d/%d recipient(s)", event_slug, sent, len(recipients))
    return sent
