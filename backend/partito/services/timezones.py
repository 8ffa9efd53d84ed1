"""Timezone-aware conversion between event wall-clock times and UTC instants.

Events are stored as absolute UTC instants, but hosts enter wall-clock times
in the event's IANA zone. A zone's UTC offset depends on the instant itself
(DST transitions), so the resolver cannot add a fixed offset:

1. guess the instant by reading the wall clock as if it were UTC;
2. look up the zone's offset at that guess;
3. subtract it from the wall clock to refine the instant;
4. look the offset up again at the refined instant and subtract once more.

Offsets take only a handful of discrete values, so the second pass lands in
the correct DST regime.

These are display/formatting helpers: bad zones or unparseable dates fall
back to naive or UTC output instead of raising.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Optional, Union

import pytz

logger = logging.getLogger(__name__)

NAIVE_LOCAL_FORMAT = "%Y-%m-%dT%H:%M"
UTC_INSTANT_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_NAIVE_LOCAL_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})$")
_RESOLVE_PASSES = 2

InstantLike = Union[datetime, str]


@dataclass(frozen=True)
class WallClock:
    """Calendar date and time of day as seen on a clock in some zone."""

    date: date
    time: time

    def isoformat(self) -> str:
        """``YYYY-MM-DDTHH:MM``, the shape of an HTML datetime-local value."""
        return f"{self.date.isoformat()}T{self.time.strftime('%H:%M')}"


def get_timezone(name: Optional[str]):
    """Return the pytz zone for ``name``, or None when missing/unknown."""
    if not name or not isinstance(name, str):
        return None
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone %r", name)
        return None


def is_valid_timezone(name: Optional[str]) -> bool:
    return get_timezone(name) is not None


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes coming back from the database are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt_timezone.utc)
    return value.astimezone(dt_timezone.utc)


def parse_instant(value: Optional[InstantLike]) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or pass a datetime through."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable instant %r", value)
        return None


def _utc_offset(tz, instant: datetime) -> timedelta:
    """Offset of ``tz`` from UTC at the naive-UTC ``instant``."""
    return pytz.utc.localize(instant).astimezone(tz).utcoffset()


def to_utc(wall: datetime, timezone_name: Optional[str]) -> Optional[datetime]:
    """Resolve a naive wall-clock datetime in ``timezone_name`` to an aware UTC datetime.

    Returns None when the zone is missing or unknown.
    """
    tz = get_timezone(timezone_name)
    if tz is None:
        return None

    wall = wall.replace(tzinfo=None)
    instant = wall
    for _ in range(_RESOLVE_PASSES):
        instant = wall - _utc_offset(tz, instant)
    return instant.replace(tzinfo=dt_timezone.utc)


def _coerce_date(value: Union[date, str]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


def _coerce_time(value: Union[time, str]) -> Optional[time]:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError:
        return None


def resolve_instant(
    local_date: Union[date, str],
    local_time: Union[time, str],
    timezone: Optional[str] = None,
) -> str:
    """Turn a wall-clock date and time in ``timezone`` into a stored instant.

    Returns ``YYYY-MM-DDTHH:MM:SSZ``. Without a (known) timezone the wall
    clock is returned naive as ``YYYY-MM-DDTHH:MM``.
    """
    d = _coerce_date(local_date)
    t = _coerce_time(local_time)
    if d is None or t is None:
        logger.warning("Cannot resolve instant from date=%r time=%r", local_date, local_time)
        return f"{local_date}T{local_time}"

    wall = datetime.combine(d, t)
    if timezone:
        instant = to_utc(wall, timezone)
        if instant is not None:
            return instant.strftime(UTC_INSTANT_FORMAT)
    return wall.strftime(NAIVE_LOCAL_FORMAT)


def format_wall_clock(instant: Optional[InstantLike], timezone: Optional[str] = None) -> Optional[WallClock]:
    """Inverse of :func:`resolve_instant`: the wall clock of ``instant`` in ``timezone``.

    A naive ``YYYY-MM-DDTHH:MM`` string is already a wall clock and is read
    field by field. Other naive values are taken as UTC. An unknown zone
    falls back to UTC; unparseable input returns None.
    """
    if isinstance(instant, str):
        match = _NAIVE_LOCAL_RE.match(instant.strip())
        if match:
            year, month, day, hour, minute = (int(part) for part in match.groups())
            try:
                return WallClock(date(year, month, day), time(hour, minute))
            except ValueError:
                return None

    parsed = parse_instant(instant)
    if parsed is None:
        return None

    tz = get_timezone(timezone) or pytz.utc
    local = ensure_utc(parsed).astimezone(tz)
    return WallClock(local.date(), time(local.hour, local.minute, local.second))


def format_datetime_local(instant: Optional[InstantLike], timezone: Optional[str] = None) -> str:
    """``YYYY-MM-DDTHH:MM`` for an editing form, or "" when unparseable."""
    wall = format_wall_clock(instant, timezone)
    return wall.isoformat() if wall else ""


def localize(instant: Optional[InstantLike], timezone: Optional[str]) -> Optional[datetime]:
    parsed = parse_instant(instant)
    if parsed is None:
        return None
    return ensure_utc(parsed).astimezone(get_timezone(timezone) or pytz.utc)


def format_date(instant: Optional[InstantLike], timezone: Optional[str] = None) -> str:
    """e.g. "Saturday, March 1, 2025"."""
    local = localize(instant, timezone)
    if local is None:
        return str(instant or "")
    return f"{local.strftime('%A, %B')} {local.day}, {local.year}"


def format_time(instant: Optional[InstantLike], timezone: Optional[str] = None) -> str:
    """e.g. "7:00 PM"."""
    local = localize(instant, timezone)
    if local is None:
        return ""
    hour = local.hour % 12 or 12
    period = "PM" if local.hour >= 12 else "AM"
    return f"{hour}:{local.minute:02d} {period}"


def timezone_abbr(timezone: Optional[str], at: Optional[datetime] = None) -> str:
    """Short zone name such as "EST" at ``at`` (default now); the zone name if unknown."""
    tz = get_timezone(timezone)
    if tz is None:
        return timezone or ""
    moment = ensure_utc(at) if at else datetime.now(dt_timezone.utc)
    return moment.astimezone(tz).tzname() or timezone
