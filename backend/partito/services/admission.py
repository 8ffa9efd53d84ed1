"""RSVP capacity / waitlist admission rule.

Pure functions over aggregate counts. The RSVP service fetches the counts
(with the event row locked) and persists whatever decision comes back.

Decision table for a "going" request needing ``1 + plus_ones`` seats:

    capacity      waitlist   fits?   outcome
    unlimited     -          -       admit as requested
    set           -          yes     admit as requested
    set           on         no      admit as "waitlist", next position
    set           off        no      rejected, nothing is written
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from partito.models.rsvp import RsvpStatus


@dataclass(frozen=True)
class AdmissionDecision:
    final_status: RsvpStatus
    waitlist_position: Optional[int] = None
    rejected: bool = False

    @property
    def waitlisted(self) -> bool:
        return self.final_status == RsvpStatus.waitlist and not self.rejected


def _non_negative(value) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _has_capacity_limit(capacity) -> bool:
    # 0 and None both mean "no limit", matching how hosts leave the field blank.
    return _non_negative(capacity) > 0


def next_waitlist_position(last_position: Optional[int]) -> int:
    """Max existing position + 1, or 1 for an empty waitlist."""
    return _non_negative(last_position) + 1


def admit_rsvp(
    requested_status: Union[RsvpStatus, str],
    requested_plus_ones: Optional[int],
    capacity: Optional[int],
    waitlist_enabled: bool,
    current_count: Optional[int],
    last_waitlist_position: Optional[int] = None,
) -> AdmissionDecision:
    """Classify an RSVP request against the event's capacity policy.

    ``current_count`` is the confirmed headcount: every going RSVP counts
    itself plus its plus-ones. Malformed counts are clamped to zero.
    """
    status = RsvpStatus(requested_status)

    if status != RsvpStatus.going or not _has_capacity_limit(capacity):
        return AdmissionDecision(final_status=status)

    seats_needed = 1 + _non_negative(requested_plus_ones)
    if _non_negative(current_count) + seats_needed <= _non_negative(capacity):
        return AdmissionDecision(final_status=status)

    if waitlist_enabled:
        return AdmissionDecision(
            final_status=RsvpStatus.waitlist,
            waitlist_position=next_waitlist_position(last_waitlist_position),
        )

    return AdmissionDecision(final_status=status, rejected=True)


def attendee_count(rsvps: Iterable) -> int:
    """Headcount of going RSVPs including their plus-ones."""
    return sum(1 + _non_negative(r.plus_ones) for r in rsvps if RsvpStatus(r.status) == RsvpStatus.going)


def remaining_capacity(capacity: Optional[int], rsvps: Iterable) -> Optional[int]:
    """Seats left, or None when the event is unlimited."""
    if not _has_capacity_limit(capacity):
        return None
    return max(0, _non_negative(capacity) - attendee_count(rsvps))


def is_at_capacity(capacity: Optional[int], rsvps: Iterable) -> bool:
    remaining = remaining_capacity(capacity, rsvps)
    return remaining is not None and remaining <= 0
