"""RSVP service.

Every write that can change the confirmed headcount runs with the event row
locked (``SELECT ... FOR UPDATE``) so the admission check and the insert
happen in one transaction. Guests prove ownership of their RSVP with the
fingerprint; hosts with the event's edit token.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from partito.models.event import Event, EventStatus, GuestListVisibility
from partito.models.rsvp import Rsvp, RsvpStatus
from partito.services import admission
from partito.services.event_service import check_edit_token, is_valid_email
from partito.utils.security import rsvp_fingerprint, tokens_match

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100
DIETARY_MAX_LENGTH = 500

_ALLOWED_FLAGS = {
    RsvpStatus.going: "allow_going",
    RsvpStatus.maybe: "allow_maybe",
    RsvpStatus.not_going: "allow_not_going",
}


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def _lock_event(db: Session, event_id: str) -> Event:
    event = db.query(Event).filter(Event.id == event_id).with_for_update().first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def get_rsvp(db: Session, rsvp_id: str) -> Rsvp:
    rsvp = db.query(Rsvp).filter(Rsvp.id == rsvp_id).first()
    if not rsvp:
        raise HTTPException(status_code=404, detail="RSVP not found")
    return rsvp


def _going_headcount(db: Session, event_id: str, exclude_id: Optional[str] = None) -> int:
    query = db.query(Rsvp).filter(Rsvp.event_id == event_id, Rsvp.status == RsvpStatus.going)
    if exclude_id:
        query = query.filter(Rsvp.id != exclude_id)
    return admission.attendee_count(query.all())


def _last_waitlist_position(db: Session, event_id: str) -> Optional[int]:
    return (
        db.query(func.max(Rsvp.waitlist_position))
        .filter(Rsvp.event_id == event_id, Rsvp.status == RsvpStatus.waitlist)
        .scalar()
    )


def _capacity_rejection() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"message": "Sorry, this event is at capacity.", "at_capacity": True},
    )


def _admit(
    db: Session,
    event: Event,
    requested: RsvpStatus,
    plus_ones: int,
    existing: Optional[Rsvp] = None,
) -> admission.AdmissionDecision:
    """Run the admission rule, not counting ``existing``'s own seats."""
    decision = admission.admit_rsvp(
        requested_status=requested,
        requested_plus_ones=plus_ones,
        capacity=event.capacity,
        waitlist_enabled=event.enable_waitlist,
        current_count=_going_headcount(db, event.id, exclude_id=existing.id if existing else None),
        last_waitlist_position=_last_waitlist_position(db, event.id),
    )
    if decision.rejected:
        logger.info("Rejected RSVP for %s: at capacity (%s)", event.slug, event.capacity)
        raise _capacity_rejection()
    if decision.waitlisted and existing is not None and existing.status == RsvpStatus.waitlist:
        # Already queued: keep the original place in line.
        return admission.AdmissionDecision(
            final_status=RsvpStatus.waitlist,
            waitlist_position=existing.waitlist_position,
        )
    return decision


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def _validate_status(event: Event, requested: RsvpStatus) -> None:
    if requested == RsvpStatus.waitlist:
        raise _bad_request("The waitlist cannot be joined directly")
    if not getattr(event, _ALLOWED_FLAGS[requested]):
        raise _bad_request(f"This event does not accept '{requested.value}' responses")


def _validate_plus_ones(event: Event, plus_ones: int) -> None:
    if plus_ones < 0:
        raise _bad_request("plus_ones cannot be negative")
    if plus_ones and not event.allow_plus_ones:
        raise _bad_request("This event does not allow plus-ones")
    if plus_ones > (event.max_plus_ones or 0) and event.allow_plus_ones:
        raise _bad_request(f"You can bring at most {event.max_plus_ones} additional guest(s)")


def _validate_answers(event: Event, answers: dict[str, Any]) -> None:
    for question in event.custom_questions or []:
        answer = answers.get(question["id"])
        if question.get("required") and (answer is None or answer is False or str(answer).strip() == ""):
            raise _bad_request(f"Please answer: {question['label']}")
        if question["type"] == "select" and answer and answer not in (question.get("options") or []):
            raise _bad_request(f"Invalid option for: {question['label']}")


def _validate_contact(event: Event, email: Optional[str], dietary_note: Optional[str]) -> None:
    if event.collect_email and not email:
        raise _bad_request("Email is required for this event")
    if email and not is_valid_email(email):
        raise _bad_request("Invalid email address")
    if dietary_note and len(dietary_note) > DIETARY_MAX_LENGTH:
        raise _bad_request(f"Dietary note must be less than {DIETARY_MAX_LENGTH} characters")


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def create_rsvp(db: Session, event: Event, data: dict[str, Any]) -> tuple[Rsvp, bool, bool]:
    """Create (or re-submit) a guest response.

    Returns ``(rsvp, was_updated, was_waitlisted)``. A response under a name
    already used for this event replaces the earlier one.
    """
    event = _lock_event(db, event.id)
    if event.status != EventStatus.active:
        raise _bad_request("This event has been cancelled")

    name = (data.get("name") or "").strip()
    if not name:
        raise _bad_request("Name is required")
    if len(name) > NAME_MAX_LENGTH:
        raise _bad_request(f"Name must be less than {NAME_MAX_LENGTH} characters")

    requested = RsvpStatus(data.get("status") or RsvpStatus.going)
    plus_ones = data.get("plus_ones") or 0
    answers = data.get("custom_answers") or {}
    email = (data.get("email") or "").strip() or None
    _validate_status(event, requested)
    _validate_plus_ones(event, plus_ones)
    _validate_answers(event, answers)
    _validate_contact(event, email, data.get("dietary_note"))

    fingerprint = rsvp_fingerprint(name, event.id)
    existing = (
        db.query(Rsvp)
        .filter(Rsvp.event_id == event.id, Rsvp.fingerprint == fingerprint)
        .first()
    )
    decision = _admit(db, event, requested, plus_ones, existing=existing)
    if existing is not None and existing.status == RsvpStatus.going and decision.waitlisted:
        # A confirmed guest never trades their seat for a waitlist spot.
        raise _capacity_rejection()

    rsvp = existing or Rsvp(event_id=event.id, fingerprint=fingerprint)
    rsvp.name = name
    rsvp.email = email
    rsvp.status = decision.final_status
    rsvp.plus_ones = plus_ones
    rsvp.dietary_note = data.get("dietary_note")
    rsvp.notifications_enabled = data.get("notifications_enabled", True)
    rsvp.custom_answers = answers
    rsvp.waitlist_position = decision.waitlist_position
    if existing is None:
        db.add(rsvp)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Concurrent RSVP with the same name for event %s", event.slug)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Someone just RSVPed with this name")
    db.refresh(rsvp)

    logger.info(
        "%s RSVP %s for %s as %s%s",
        "Updated" if existing else "Created",
        rsvp.id,
        event.slug,
        rsvp.status.value,
        f" (waitlist #{rsvp.waitlist_position})" if decision.waitlisted else "",
    )
    return rsvp, existing is not None, decision.waitlisted


def rsvp_notification_args(event: Event, rsvp: Rsvp, was_waitlisted: bool) -> dict[str, Any]:
    """Plain values for ``notify_rsvp``; the session is gone when it runs."""
    return {
        "host_email": event.host_email,
        "notify_on_rsvp": event.notify_on_rsvp,
        "event_title": event.title,
        "event_slug": event.slug,
        "guest_name": rsvp.name,
        "guest_email": rsvp.email,
        "status": rsvp.status.value,
        "plus_ones": rsvp.plus_ones,
        "dietary_note": rsvp.dietary_note,
        "was_waitlisted": was_waitlisted,
        "created_at": rsvp.created_at or datetime.now(timezone.utc),
    }


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------
def _ordered(db: Session, event_id: str) -> list[Rsvp]:
    return db.query(Rsvp).filter(Rsvp.event_id == event_id).order_by(Rsvp.created_at).all()


def list_host_rsvps(db: Session, event: Event) -> list[Rsvp]:
    return _ordered(db, event.id)


def list_public_rsvps(db: Session, event: Event) -> dict[str, Any]:
    """Guest list shaped by the event's ``guest_list_visibility``."""
    visibility = event.guest_list_visibility
    result = {
        "visibility": visibility.value,
        "going_count": 0,
        "maybe_count": 0,
        "not_going_count": 0,
        "waitlist_count": 0,
        "attendee_count": 0,
        "rsvps": [],
    }
    if visibility == GuestListVisibility.host_only:
        return result

    rsvps = _ordered(db, event.id)
    for rsvp in rsvps:
        result[f"{rsvp.status.value}_count"] += 1
    result["attendee_count"] = admission.attendee_count(rsvps)
    if visibility == GuestListVisibility.count:
        return result

    for rsvp in rsvps:
        if visibility == GuestListVisibility.names and rsvp.status == RsvpStatus.not_going:
            continue
        result["rsvps"].append({
            "id": rsvp.id,
            "name": rsvp.name,
            "status": rsvp.status,
            "plus_ones": rsvp.plus_ones,
            "waitlist_position": rsvp.waitlist_position,
            "dietary_note": rsvp.dietary_note if visibility == GuestListVisibility.full else None,
        })
    return result


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------
def _apply_status_change(db: Session, event: Event, rsvp: Rsvp, requested: RsvpStatus, plus_ones: int) -> None:
    if requested == RsvpStatus.going:
        decision = _admit(db, event, requested, plus_ones, existing=rsvp)
        if decision.waitlisted and rsvp.status == RsvpStatus.going:
            # A confirmed guest is never bumped to the waitlist by their own edit.
            raise _capacity_rejection()
        rsvp.status = decision.final_status
        rsvp.waitlist_position = decision.waitlist_position
    else:
        rsvp.status = requested
        rsvp.waitlist_position = None


def update_rsvp(db: Session, rsvp_id: str, fingerprint: str, updates: dict[str, Any]) -> Rsvp:
    """Guest edit of their own RSVP."""
    rsvp = get_rsvp(db, rsvp_id)
    if not tokens_match(fingerprint, rsvp.fingerprint):
        logger.warning("Fingerprint mismatch updating RSVP %s", rsvp_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only edit your own RSVP")

    event = _lock_event(db, rsvp.event_id)
    if event.status != EventStatus.active:
        raise _bad_request("This event has been cancelled")

    plus_ones = updates.get("plus_ones")
    if plus_ones is None:
        plus_ones = rsvp.plus_ones
    else:
        _validate_plus_ones(event, plus_ones)

    requested = updates.get("status")
    if requested is not None:
        requested = RsvpStatus(requested)
        if requested != rsvp.status:
            _validate_status(event, requested)
    else:
        requested = rsvp.status

    email = updates.get("email", rsvp.email)
    _validate_contact(event, email, updates.get("dietary_note", rsvp.dietary_note))
    if updates.get("custom_answers") is not None:
        _validate_answers(event, updates["custom_answers"])

    # Re-check seats whenever the guest's going headcount could grow.
    if requested == RsvpStatus.going and (rsvp.status != RsvpStatus.going or plus_ones > rsvp.plus_ones):
        _apply_status_change(db, event, rsvp, requested, plus_ones)
    elif requested != rsvp.status:
        _apply_status_change(db, event, rsvp, requested, plus_ones)

    rsvp.plus_ones = plus_ones
    for field in ("email", "dietary_note", "notifications_enabled", "custom_answers"):
        if field in updates and updates[field] is not None:
            setattr(rsvp, field, updates[field])
    rsvp.updated_at = datetime.now(timezone.utc)

    db.commit()
    db.refresh(rsvp)
    logger.info("Guest updated RSVP %s for %s (%s)", rsvp.id, event.slug, rsvp.status.value)
    return rsvp


def host_update_rsvp_status(db: Session, rsvp_id: str, edit_token: Optional[str], new_status: RsvpStatus) -> Rsvp:
    """Host override of a guest's status; admission still applies to "going"."""
    rsvp = get_rsvp(db, rsvp_id)
    event = _lock_event(db, rsvp.event_id)
    check_edit_token(event, edit_token)

    new_status = RsvpStatus(new_status)
    if new_status == RsvpStatus.waitlist:
        if rsvp.status != RsvpStatus.waitlist:
            rsvp.status = RsvpStatus.waitlist
            rsvp.waitlist_position = admission.next_waitlist_position(_last_waitlist_position(db, event.id))
    else:
        _apply_status_change(db, event, rsvp, new_status, rsvp.plus_ones)

    rsvp.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(rsvp)
    logger.info("Host set RSVP %s for %s to %s", rsvp.id, event.slug, rsvp.status.value)
    return rsvp


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------
def delete_rsvp(
    db: Session,
    rsvp_id: str,
    fingerprint: Optional[str] = None,
    edit_token: Optional[str] = None,
) -> None:
    """Delete by the guest (fingerprint) or the host (edit token)."""
    rsvp = get_rsvp(db, rsvp_id)
    if not tokens_match(fingerprint, rsvp.fingerprint) and not tokens_match(edit_token, rsvp.event.edit_token):
        logger.warning("Unauthorized delete attempt on RSVP %s", rsvp_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to delete this RSVP")

    slug = rsvp.event.slug
    db.delete(rsvp)
    db.commit()
    logger.info("Deleted RSVP %s from %s", rsvp_id, slug)


# ---------------------------------------------------------------------------
# Waitlist promotion
# ---------------------------------------------------------------------------
def next_in_line(db: Session, event_id: str) -> Optional[Rsvp]:
    """Lowest waitlist position first; unnumbered entries last, by arrival.

    Unnumbered entries queue behind every numbered one; they are not
    treated as position 0.
    """
    return (
        db.query(Rsvp)
        .filter(Rsvp.event_id == event_id, Rsvp.status == RsvpStatus.waitlist)
        .order_by(Rsvp.waitlist_position.is_(None), Rsvp.waitlist_position, Rsvp.created_at)
        .first()
    )


def promote_from_waitlist(db: Session, event: Event, edit_token: Optional[str]) -> Optional[Rsvp]:
    """Move the first waitlisted guest to "going".

    Returns None for an empty waitlist. Raises 409 when the promoted guest
    would not fit, leaving the waitlist untouched.
    """
    check_edit_token(event, edit_token)
    event = _lock_event(db, event.id)

    candidate = next_in_line(db, event.id)
    if candidate is None:
        logger.info("Waitlist empty for %s; nothing to promote", event.slug)
        return None

    decision = admission.admit_rsvp(
        requested_status=RsvpStatus.going,
        requested_plus_ones=candidate.plus_ones,
        capacity=event.capacity,
        waitlist_enabled=False,
        current_count=_going_headcount(db, event.id),
    )
    if decision.rejected:
        logger.info("No room to promote %s on %s", candidate.id, event.slug)
        raise _capacity_rejection()

    candidate.status = RsvpStatus.going
    candidate.waitlist_position = None
    candidate.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(candidate)
    logger.info("Promoted RSVP %s from waitlist for %s", candidate.id, event.slug)
    return candidate


def promotion_notification_args(event: Event, rsvp: Rsvp) -> dict[str, Any]:
    return {
        "guest_email": rsvp.email if rsvp.notifications_enabled else None,
        "guest_name": rsvp.name,
        "event_title": event.title,
        "event_slug": event.slug,
        "host_name": event.host_name,
        "start_time": event.start_time,
        "event_timezone": event.timezone,
        "location_type": event.location_type.value,
        "venue_name": event.venue_name,
        "address": event.address,
    }
