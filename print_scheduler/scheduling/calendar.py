"""
Working calendar: business-hours arithmetic on the shop's fixed UTC offset.

A working day is Monday to Friday (minus configured holidays). The shift runs
08:00-17:30 local time (570 minutes); a stage may book at most 510 of them
per day. Offsets are minutes since 08:00 of the same calendar day.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Union

from print_scheduler.datetime_utils import get_local_timezone, to_local
from print_scheduler.errors import ValidationError
from print_scheduler.scheduling.config import SchedulingConfig

DateLike = Union[date, datetime]


class WorkingCalendar:
    """Timezone-correct business-hours calculations."""

    def __init__(
        self,
        utc_offset_hours: Optional[float] = None,
        holidays: Optional[Iterable[date]] = None,
    ):
        self.tz: timezone = get_local_timezone(utc_offset_hours)
        self.holidays = frozenset(holidays or ())
        self.shift_start = time(SchedulingConfig.SHIFT_START_HOUR, SchedulingConfig.SHIFT_START_MINUTE)
        self.shift_end = time(SchedulingConfig.SHIFT_END_HOUR, SchedulingConfig.SHIFT_END_MINUTE)
        self.day_minutes = SchedulingConfig.shift_end_offset() - SchedulingConfig.shift_start_offset()

    def __repr__(self):
        return f"<WorkingCalendar tz={self.tz} holidays={len(self.holidays)}>"

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        """Current shop-local time."""
        return datetime.now(self.tz)

    def to_local(self, t: datetime) -> datetime:
        return to_local(t, self.tz)

    def local_date(self, value: DateLike) -> date:
        """Calendar date of a date or datetime, in shop-local time."""
        if isinstance(value, datetime):
            return self.to_local(value).date()
        return value

    def local_datetime(self, day: date, hour: int = 0, minute: int = 0) -> datetime:
        """Build an aware shop-local datetime on the given day."""
        return datetime.combine(day, time(hour, minute), tzinfo=self.tz)

    def day_start(self, day: date) -> datetime:
        return datetime.combine(day, self.shift_start, tzinfo=self.tz)

    def day_end(self, day: date) -> datetime:
        return datetime.combine(day, self.shift_end, tzinfo=self.tz)

    def offset_to_time(self, day: date, minutes: int) -> datetime:
        """
        Convert a minute offset from 08:00 into a local datetime on the same day.

        Raises:
            ValidationError: If the offset falls outside the shift window.
        """
        if minutes < 0 or minutes > self.day_minutes:
            raise ValidationError(
                "offset_minutes", minutes,
                f"must be between 0 and {self.day_minutes}",
            )
        return self.day_start(day) + timedelta(minutes=minutes)

    def time_to_offset(self, t: datetime) -> int:
        """Minutes between 08:00 of t's local calendar day and t."""
        local = self.to_local(t)
        delta = local - self.day_start(local.date())
        return int(delta.total_seconds() // 60)

    # ------------------------------------------------------------------
    # Working-day rules
    # ------------------------------------------------------------------

    def is_working_day(self, value: DateLike) -> bool:
        day = self.local_date(value)
        return day.weekday() in SchedulingConfig.WORKING_WEEKDAYS and day not in self.holidays

    def is_within_business_hours(self, t: datetime) -> bool:
        local = self.to_local(t)
        return self.shift_start <= local.time() <= self.shift_end

    def is_valid_business_time(self, t: datetime) -> bool:
        return self.is_working_day(t) and self.is_within_business_hours(t)

    def next_working_date(self, value: DateLike) -> date:
        """Earliest working date strictly after the given date."""
        day = self.local_date(value) + timedelta(days=1)
        while not self.is_working_day(day):
            day += timedelta(days=1)
        return day

    def next_working_day_start(self, from_value: DateLike) -> datetime:
        """08:00 of the earliest working date strictly after from_value."""
        return self.day_start(self.next_working_date(from_value))

    def add_working_days(self, start: DateLike, working_days: int) -> date:
        """
        Calculate the date that is a number of working days after start.

        Args:
            start: The start date (date or datetime)
            working_days: Number of working days to add

        Returns:
            date: start itself when working_days <= 0
        """
        current = self.local_date(start)
        for _ in range(max(0, working_days)):
            current = self.next_working_date(current)
        return current

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize_strict(self, t: datetime) -> datetime:
        """
        Return t in local time, or fail if it is not a valid business time.

        Raises:
            ValidationError: If t is on a non-working day or outside 08:00-17:30.
        """
        local = self.to_local(t)
        if not self.is_working_day(local):
            raise ValidationError("scheduled_time", local.isoformat(), "falls on a non-working day")
        if not self.is_within_business_hours(local):
            raise ValidationError("scheduled_time", local.isoformat(), "is outside business hours 08:00-17:30")
        return local

    def normalize_forward(self, t: datetime) -> datetime:
        """
        Move t to the nearest valid business time at or after it.

        A working-day time before the shift opens moves to that day's 08:00,
        anything else invalid moves to the next working day's 08:00.
        """
        local = self.to_local(t)
        if self.is_valid_business_time(local):
            return local
        if self.is_working_day(local) and local < self.day_start(local.date()):
            return self.day_start(local.date())
        return self.next_working_day_start(local)

    def remaining_minutes(self, t: datetime) -> int:
        """Minutes from t until 17:30 the same day, 0 if t is not a valid business time."""
        local = self.to_local(t)
        if not self.is_valid_business_time(local):
            return 0
        delta = self.day_end(local.date()) - local
        return max(0, int(delta.total_seconds() // 60))

    def ensure_not_past(self, t: datetime, now: Optional[datetime] = None) -> datetime:
        """
        Reject times earlier than now.

        Raises:
            ValidationError: If t is in the past.
        """
        now = now or self.now()
        local = self.to_local(t)
        if local < self.to_local(now):
            raise ValidationError("start_time", local.isoformat(), "is in the past")
        return local
