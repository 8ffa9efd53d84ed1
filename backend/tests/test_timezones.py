"""Tests for wall-clock <-> UTC instant resolution.

Covers:
- Round trip across a full DST year in several zones
- Fixed-offset zones shift linearly
- Naive fallback without a (valid) timezone
- Unparseable input never raises
"""
from datetime import date, datetime, time, timedelta, timezone

import pytest

from partito.services.timezones import (
    WallClock, format_date, format_datetime_local, format_time, format_wall_clock,
    is_valid_timezone, resolve_instant, timezone_abbr, to_utc,
)

# Hours chosen to stay clear of the 01:00-03:00 DST gaps in every zone below.
SAMPLE_HOURS = [0, 7, 12, 19, 23]
DST_ZONES = ["America/New_York", "America/Los_Angeles", "Europe/London", "Australia/Sydney"]


def _every_day_of(year: int):
    day = date(year, 1, 1)
    while day.year == year:
        yield day
        day += timedelta(days=1)


class TestRoundTrip:
    """format_wall_clock(resolve_instant(d, t, tz), tz) == (d, t)."""

    @pytest.mark.parametrize("tz", DST_ZONES)
    def test_round_trip_across_dst_year(self, tz):
        for day in _every_day_of(2025):
            for hour in SAMPLE_HOURS:
                wall_time = time(hour, 30)
                instant = resolve_instant(day, wall_time, tz)
                assert instant.endswith("Z")
                assert format_wall_clock(instant, tz) == WallClock(day, wall_time), (tz, day, hour)

    def test_string_inputs(self):
        instant = resolve_instant("2025-07-04", "18:45", "America/Chicago")
        assert instant == "2025-07-04T23:45:00Z"
        assert format_wall_clock(instant, "America/Chicago").isoformat() == "2025-07-04T18:45"

    def test_day_after_spring_forward(self):
        # 03:30 EDT on the transition day is 07:30 UTC
        assert resolve_instant("2025-03-09", "03:30", "America/New_York") == "2025-03-09T07:30:00Z"

    def test_winter_and_summer_offsets_differ(self):
        assert resolve_instant("2025-01-15", "12:00", "Europe/London") == "2025-01-15T12:00:00Z"
        assert resolve_instant("2025-07-15", "12:00", "Europe/London") == "2025-07-15T11:00:00Z"


class TestFixedOffset:
    """A zone with no DST is a linear shift."""

    def test_tokyo(self):
        assert resolve_instant("2025-06-01", "09:00", "Asia/Tokyo") == "2025-06-01T00:00:00Z"
        assert resolve_instant("2025-12-01", "09:00", "Asia/Tokyo") == "2025-12-01T00:00:00Z"

    def test_crosses_date_line_backwards(self):
        assert resolve_instant("2025-06-01", "05:00", "Asia/Tokyo") == "2025-05-31T20:00:00Z"

    def test_etc_zone(self):
        # POSIX sign convention: Etc/GMT+5 is UTC-5
        assert resolve_instant("2025-03-01", "10:00", "Etc/GMT+5") == "2025-03-01T15:00:00Z"

    def test_every_hour_shifts_by_nine(self):
        for hour in range(24):
            instant = resolve_instant("2025-08-20", time(hour, 0), "Asia/Tokyo")
            expected = datetime(2025, 8, 20, hour, tzinfo=timezone.utc) - timedelta(hours=9)
            assert instant == expected.strftime("%Y-%m-%dT%H:%M:%SZ")


class TestFallbacks:
    """Bad or missing zones degrade instead of raising."""

    def test_no_timezone_returns_naive(self):
        assert resolve_instant("2025-03-01", "19:00") == "2025-03-01T19:00"

    def test_unknown_timezone_returns_naive(self):
        assert resolve_instant("2025-03-01", "19:00", "Mars/Olympus_Mons") == "2025-03-01T19:00"

    def test_naive_string_is_read_as_wall_clock(self):
        assert format_wall_clock("2025-03-01T19:00", "Asia/Tokyo") == WallClock(date(2025, 3, 1), time(19, 0))

    def test_naive_round_trip(self):
        instant = resolve_instant("2025-03-01", "19:00")
        assert format_wall_clock(instant) == WallClock(date(2025, 3, 1), time(19, 0))

    def test_unknown_zone_formats_as_utc(self):
        assert format_wall_clock("2025-03-01T19:00:00Z", "Not/A_Zone") == WallClock(date(2025, 3, 1), time(19, 0))

    def test_unparseable_input(self):
        assert resolve_instant("not-a-date", "19:00", "UTC") == "not-a-dateT19:00"
        assert format_wall_clock("garbage", "UTC") is None
        assert format_wall_clock(None) is None
        assert format_datetime_local("garbage") == ""

    def test_to_utc_unknown_zone(self):
        assert to_utc(datetime(2025, 3, 1, 19, 0), "Nowhere/Special") is None

    def test_is_valid_timezone(self):
        assert is_valid_timezone("America/New_York")
        assert not is_valid_timezone("")
        assert not is_valid_timezone(None)
        assert not is_valid_timezone("Nowhere/Special")


class TestDisplayFormatting:
    """Human-readable date, time and zone labels."""

    def test_format_date_and_time(self):
        instant = "2025-03-02T00:00:00Z"
        assert format_date(instant, "America/New_York") == "Saturday, March 1, 2025"
        assert format_time(instant, "America/New_York") == "7:00 PM"

    def test_midnight_and_noon(self):
        assert format_time("2025-03-01T00:05:00Z", "UTC") == "12:05 AM"
        assert format_time("2025-03-01T12:00:00Z", "UTC") == "12:00 PM"

    def test_timezone_abbr(self):
        assert timezone_abbr("America/New_York", datetime(2025, 1, 15, tzinfo=timezone.utc)) == "EST"
        assert timezone_abbr("America/New_York", datetime(2025, 7, 15, tzinfo=timezone.utc)) == "EDT"
        assert timezone_abbr("Nowhere/Special") == "Nowhere/Special"

    def test_datetime_local(self):
        assert format_datetime_local("2025-07-04T23:45:00Z", "America/Chicago") == "2025-07-04T18:45"
