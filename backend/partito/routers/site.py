"""Site-level routes: slug availability, edit-link recovery, contact form, retention purge."""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from partito.config import settings
from partito.database import get_db
from partito.schemas.event import ContactRequest, PurgeResult, RecoverRequest, SlugAvailability
from partito.services import event_service
from partito.services.notification_service import (
    Mailer, get_mailer, send_contact_message, send_recovery_email,
)
from partito.utils.security import tokens_match

logger = logging.getLogger(__name__)
router = APIRouter()

RECOVERY_MESSAGE = "If that event exists and the email matches, we've sent the edit link."


@router.get("/slugs/{slug}/available", response_model=SlugAvailability)
def check_slug(slug: str, db: Session = Depends(get_db)):
    normalized = event_service.generate_slug(slug)
    available = bool(normalized) and event_service.is_slug_available(db, normalized)
    return {"slug": normalized, "available": available}


@router.post("/recover")
def recover_edit_link(
    payload: RecoverRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Email the edit link to the host; the answer never reveals whether the event exists."""
    if not payload.slug.strip() or not payload.email.strip():
        raise HTTPException(status_code=400, detail="Event URL and email are required")

    event = event_service.find_event_for_recovery(db, payload.slug, payload.email)
    if event is not None:
        background_tasks.add_task(
            send_recovery_email,
            mailer,
            host_email=event.host_email,
            host_name=event.host_name,
            event_title=event.title,
            event_slug=event.slug,
            edit_token=event.edit_token,
        )
        logger.info("Recovery email queued for event %s", event.slug)
    return {"success": True, "message": RECOVERY_MESSAGE}


@router.post("/contact")
def contact(payload: ContactRequest, background_tasks: BackgroundTasks, mailer: Mailer = Depends(get_mailer)):
    if not payload.name.strip() or not payload.message.strip():
        raise HTTPException(status_code=400, detail="Name and message are required")
    if not event_service.is_valid_email(payload.email):
        raise HTTPException(status_code=400, detail="Invalid email address")

    background_tasks.add_task(
        send_contact_message,
        mailer,
        name=payload.name.strip(),
        email=payload.email.strip(),
        subject=payload.subject,
        message=payload.message,
    )
    return {"success": True}


@router.post("/admin/purge", response_model=PurgeResult)
def purge_expired(x_admin_token: Optional[str] = Header(None), db: Session = Depends(get_db)):
    """Retention job: delete events past their auto-delete window."""
    if not tokens_match(x_admin_token, settings.ADMIN_TOKEN):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin token required")
    deleted = event_service.purge_expired_events(db)
    event_service.cleanup_rate_limits(db)
    return {"deleted": deleted}
