"""RSVP API routes: guests authenticate with their fingerprint, hosts with the edit token."""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status
from sqlalchemy.orm import Session

from partito.database import get_db
from partito.schemas.rsvp import (
    GuestListOut, RsvpCreate, RsvpCreateResult, RsvpOut, RsvpSelfUpdate, RsvpStatusUpdate,
)
from partito.services import event_service, rsvp_service
from partito.services.notification_service import (
    Mailer, get_mailer, notify_rsvp, notify_waitlist_promotion,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/events/{slug}/rsvps", response_model=RsvpCreateResult, status_code=status.HTTP_201_CREATED)
def create_rsvp(
    slug: str,
    payload: RsvpCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """RSVP to an event; over capacity goes to the waitlist or is refused with 409."""
    event = event_service.get_event_by_slug(db, slug)
    rsvp, was_updated, was_waitlisted = rsvp_service.create_rsvp(db, event, payload.model_dump())
    if not was_updated:
        background_tasks.add_task(
            notify_rsvp, mailer, **rsvp_service.rsvp_notification_args(event, rsvp, was_waitlisted)
        )
    return {"rsvp": rsvp, "was_updated": was_updated, "was_waitlisted": was_waitlisted}


@router.get("/events/{slug}/rsvps", response_model=GuestListOut)
def list_rsvps(slug: str, db: Session = Depends(get_db)):
    """Public guest list, shaped by the event's visibility setting."""
    event = event_service.get_event_by_slug(db, slug)
    return rsvp_service.list_public_rsvps(db, event)


@router.get("/events/{slug}/rsvps/host", response_model=list[RsvpOut])
def list_rsvps_for_host(slug: str, token: str = Query(...), db: Session = Depends(get_db)):
    event = event_service.get_event_for_host(db, slug, token)
    return rsvp_service.list_host_rsvps(db, event)


@router.post("/events/{slug}/waitlist/promote", response_model=Optional[RsvpOut])
def promote_from_waitlist(
    slug: str,
    background_tasks: BackgroundTasks,
    token: str = Query(...),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Promote the first guest in line; null when the waitlist is empty."""
    event = event_service.get_event_by_slug(db, slug)
    promoted = rsvp_service.promote_from_waitlist(db, event, token)
    if promoted is not None:
        background_tasks.add_task(
            notify_waitlist_promotion, mailer, **rsvp_service.promotion_notification_args(event, promoted)
        )
    return promoted


@router.patch("/rsvps/{rsvp_id}", response_model=RsvpOut)
def update_rsvp(rsvp_id: str, payload: RsvpSelfUpdate, db: Session = Depends(get_db)):
    """Guest edits their own RSVP."""
    updates = payload.model_dump(exclude_unset=True, exclude={"fingerprint"})
    return rsvp_service.update_rsvp(db, rsvp_id, payload.fingerprint, updates)


@router.patch("/rsvps/{rsvp_id}/status", response_model=RsvpOut)
def host_update_status(rsvp_id: str, payload: RsvpStatusUpdate, token: str = Query(...), db: Session = Depends(get_db)):
    return rsvp_service.host_update_rsvp_status(db, rsvp_id, token, payload.status)


@router.delete("/rsvps/{rsvp_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rsvp(
    rsvp_id: str,
    fingerprint: Optional[str] = Query(None),
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    rsvp_service.delete_rsvp(db, rsvp_id, fingerprint=fingerprint, edit_token=token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
