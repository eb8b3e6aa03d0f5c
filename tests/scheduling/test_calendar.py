"""
Tests for the working calendar: offsets, working days and normalization.
"""
import pytest
from datetime import date, datetime, timedelta, timezone

from print_scheduler.errors import ValidationError
from print_scheduler.scheduling.calendar import WorkingCalendar


class TestOffsets:
    """Minute offsets from the 08:00 shift start."""

    def test_offset_zero_is_shift_start(self, calendar, monday):
        t = calendar.offset_to_time(monday, 0)
        assert (t.hour, t.minute) == (8, 0)
        assert t.utcoffset() == timedelta(hours=2)

    def test_offset_570_is_shift_end(self, calendar, monday):
        t = calendar.offset_to_time(monday, 570)
        assert (t.hour, t.minute) == (17, 30)
        assert calendar.day_minutes == 570

    @pytest.mark.parametrize("minutes", [-1, 571])
    def test_offset_outside_shift_rejected(self, calendar, monday, minutes):
        with pytest.raises(ValidationError):
            calendar.offset_to_time(monday, minutes)

    def test_time_to_offset_local(self, calendar, monday):
        assert calendar.time_to_offset(calendar.local_datetime(monday, 9, 30)) == 90

    def test_time_to_offset_converts_utc_first(self, calendar, monday):
        """06:00 UTC is 08:00 in the shop's UTC+02:00 zone."""
        t = datetime(2025, 3, 3, 6, 0, tzinfo=timezone.utc)
        assert calendar.time_to_offset(t) == 0


class TestWorkingDays:

    def test_weekdays_are_working_days(self, calendar, monday):
        assert all(calendar.is_working_day(monday + timedelta(days=n)) for n in range(5))

    def test_weekend_is_not_working(self, calendar):
        assert not calendar.is_working_day(date(2025, 3, 8))
        assert not calendar.is_working_day(date(2025, 3, 9))

    def test_holiday_is_not_working(self, monday):
        cal = WorkingCalendar(utc_offset_hours=2, holidays=[monday])
        assert not cal.is_working_day(monday)

    def test_working_day_uses_local_date(self, calendar):
        """Friday 23:00 UTC is already Saturday in local time."""
        t = datetime(2025, 3, 7, 23, 0, tzinfo=timezone.utc)
        assert not calendar.is_working_day(t)

    def test_next_working_date_skips_weekend(self, calendar):
        assert calendar.next_working_date(date(2025, 3, 7)) == date(2025, 3, 10)

    def test_next_working_day_start(self, calendar):
        t = calendar.next_working_day_start(date(2025, 3, 7))
        assert t == calendar.local_datetime(date(2025, 3, 10), 8, 0)

    def test_add_working_days(self, calendar, monday):
        assert calendar.add_working_days(monday, 3) == date(2025, 3, 6)
        assert calendar.add_working_days(monday, 5) == date(2025, 3, 10)

    def test_add_zero_working_days_returns_start(self, calendar, monday):
        assert calendar.add_working_days(monday, 0) == monday


class TestNormalization:

    def test_strict_accepts_business_time(self, calendar, monday):
        t = calendar.local_datetime(monday, 10, 0)
        assert calendar.normalize_strict(t) == t

    def test_strict_rejects_weekend(self, calendar):
        with pytest.raises(ValidationError):
            calendar.normalize_strict(calendar.local_datetime(date(2025, 3, 8), 10, 0))

    def test_strict_rejects_after_hours(self, calendar, monday):
        with pytest.raises(ValidationError):
            calendar.normalize_strict(calendar.local_datetime(monday, 18, 0))

    def test_forward_before_opening_moves_to_same_day(self, calendar, monday):
        t = calendar.normalize_forward(calendar.local_datetime(monday, 7, 0))
        assert t == calendar.local_datetime(monday, 8, 0)

    def test_forward_after_close_moves_to_next_day(self, calendar, monday):
        t = calendar.normalize_forward(calendar.local_datetime(monday, 18, 0))
        assert t == calendar.local_datetime(date(2025, 3, 4), 8, 0)

    def test_forward_weekend_moves_to_monday(self, calendar):
        t = calendar.normalize_forward(calendar.local_datetime(date(2025, 3, 8), 10, 0))
        assert t == calendar.local_datetime(date(2025, 3, 10), 8, 0)

    def test_remaining_minutes(self, calendar, monday):
        assert calendar.remaining_minutes(calendar.local_datetime(monday, 17, 0)) == 30
        assert calendar.remaining_minutes(calendar.local_datetime(date(2025, 3, 8), 10, 0)) == 0

    def test_ensure_not_past(self, calendar, monday):
        now = calendar.local_datetime(monday, 12, 0)
        with pytest.raises(ValidationError):
            calendar.ensure_not_past(calendar.local_datetime(monday, 11, 0), now)
        later = calendar.local_datetime(monday, 13, 0)
        assert calendar.ensure_not_past(later, now) == later
