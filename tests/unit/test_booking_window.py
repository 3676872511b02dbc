"""Unit tests for turning calendar input into a booking window."""
import os
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

from scheduling.lifecycle import booking_window

NEW_YORK = ZoneInfo("America/New_York")
DAY = date(2024, 3, 12)


class TestBookingWindow:
    """Test end time derivation and overnight rolls."""

    def test_explicit_end(self):
        start, end = booking_window(DAY, time(10, 0), time(12, 30), 2, NEW_YORK)

        assert start == datetime(2024, 3, 12, 14, 0, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 12, 16, 30, tzinfo=timezone.utc)

    def test_overnight_end_rolls_to_next_day(self):
        start, end = booking_window(DAY, time(22, 0), time(2, 0), 2, NEW_YORK)

        assert end - start == timedelta(hours=4)
        assert end == datetime(2024, 3, 13, 6, 0, tzinfo=timezone.utc)

    def test_missing_end_uses_length(self):
        start, end = booking_window(DAY, time(9, 0), None, 3, NEW_YORK)

        assert start == datetime(2024, 3, 12, 13, 0, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 12, 16, 0, tzinfo=timezone.utc)

    def test_overnight_across_dst_start(self):
        # Clocks jump from 02:00 to 03:00 in New York on 2024-03-10.
        start, end = booking_window(date(2024, 3, 9), time(22, 0), time(4, 0), 2, NEW_YORK)

        assert start == datetime(2024, 3, 10, 3, 0, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)
