"""Event API routes: delegates to event_service; the edit token gates host actions."""
import logging
from types import SimpleNamespace
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from partito.database import get_db
from partito.schemas.event import (
    CalendarLinks, EventCreate, EventOut, EventPatch, EventUpdateCreate, EventUpdateOut,
    PasswordInfo, PasswordVerifyRequest, PasswordVerifyResult, PublicEventOut,
)
from partito.services import event_service, export_service, rsvp_service
from partito.services.notification_service import Mailer, get_mailer, send_event_update

logger = logging.getLogger(__name__)
router = APIRouter()


def client_ip(request: Request) -> str:
    """Best guess at the caller's address behind a proxy or CDN."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    for header in ("cf-connecting-ip", "x-real-ip"):
        if request.headers.get(header):
            return request.headers[header].strip()
    return request.client.host if request.client else "unknown"


def _public_view(event, fingerprint: Optional[str] = None) -> dict:
    return event_service.public_event_view(
        event, viewer_is_going=event_service.viewer_is_going(event, fingerprint)
    )


@router.post("", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, request: Request, db: Session = Depends(get_db)):
    """Create an event; the response carries the edit token exactly once."""
    return event_service.create_event(db, payload.model_dump(), client_ip(request))


@router.get("/{slug}", response_model=PublicEventOut)
def get_event(
    slug: str,
    fingerprint: Optional[str] = Query(None, description="Guest fingerprint; reveals RSVP-only links to going guests"),
    db: Session = Depends(get_db),
):
    """Public event page data."""
    return _public_view(event_service.get_event_by_slug(db, slug), fingerprint)


@router.get("/{slug}/manage", response_model=EventOut)
def get_event_for_host(slug: str, token: str = Query(...), db: Session = Depends(get_db)):
    return event_service.get_event_for_host(db, slug, token)


@router.patch("/{slug}", response_model=EventOut)
def update_event(slug: str, payload: EventPatch, token: str = Query(...), db: Session = Depends(get_db)):
    """Partial update (host only)."""
    event = event_service.get_event_for_host(db, slug, token)
    return event_service.update_event(db, event, payload.model_dump(exclude_unset=True))


@router.post("/{slug}/cancel", response_model=EventOut)
def cancel_event(slug: str, token: str = Query(...), db: Session = Depends(get_db)):
    """Cancel an event (soft delete, host only)."""
    event = event_service.get_event_for_host(db, slug, token)
    return event_service.cancel_event(db, event)


@router.delete("/{slug}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(slug: str, token: str = Query(...), db: Session = Depends(get_db)):
    event = event_service.get_event_for_host(db, slug, token)
    event_service.delete_event(db, event)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Password gate ---

@router.get("/{slug}/password", response_model=PasswordInfo)
def get_password_info(slug: str, db: Session = Depends(get_db)):
    return event_service.password_info(event_service.get_event_by_slug(db, slug))


@router.post("/{slug}/password/verify", response_model=PasswordVerifyResult)
def verify_password(slug: str, payload: PasswordVerifyRequest, db: Session = Depends(get_db)):
    event = event_service.get_event_by_slug(db, slug)
    return {"valid": event_service.verify_event_password(event, payload.password)}


# --- Exports ---

@router.get("/{slug}/calendar.ics")
def download_ics(slug: str, db: Session = Depends(get_db)):
    """ICS file / webcal feed, built from the public view of the event."""
    event = event_service.get_event_by_slug(db, slug)
    body = export_service.generate_ics(SimpleNamespace(**_public_view(event)))
    return Response(
        content=body,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{event.slug}.ics"'},
    )


@router.get("/{slug}/calendar-links", response_model=CalendarLinks)
def get_calendar_links(slug: str, db: Session = Depends(get_db)):
    event = event_service.get_event_by_slug(db, slug)
    return export_service.calendar_links(SimpleNamespace(**_public_view(event)))


@router.get("/{slug}/guests.csv")
def download_guest_csv(slug: str, token: str = Query(...), db: Session = Depends(get_db)):
    """Guest list export (host only)."""
    event = event_service.get_event_for_host(db, slug, token)
    rsvps = rsvp_service.list_host_rsvps(db, event)
    logger.info("Exporting %d RSVP(s) for %s", len(rsvps), event.slug)
    return Response(
        content=export_service.guests_csv(rsvps, event.custom_questions),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_service.csv_filename(event.title)}"'},
    )


# --- Host updates ---

@router.post("/{slug}/updates", response_model=EventUpdateOut, status_code=status.HTTP_201_CREATED)
def post_event_update(
    slug: str,
    payload: EventUpdateCreate,
    background_tasks: BackgroundTasks,
    token: str = Query(...),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Record a host broadcast and email it to matching guests."""
    event = event_service.get_event_for_host(db, slug, token)
    update, recipients = event_service.create_event_update(
        db, event, payload.subject, payload.body, payload.recipient_filter
    )
    if recipients:
        background_tasks.add_task(
            send_event_update,
            mailer,
            recipients=recipients,
            event_title=event.title,
            event_slug=event.slug,
            subject=update.subject,
            body=update.body,
        )
    return update


@router.get("/{slug}/updates", response_model=list[EventUpdateOut])
def list_event_updates(slug: str, token: str = Query(...), db: Session = Depends(get_db)):
    event = event_service.get_event_for_host(db, slug, token)
    return event_service.list_event_updates(db, event)
