"""
Scheduling configuration module.

Fixed business rules for the production floor. Runtime tunables (timezone
offset, search horizon, retry policy) live in print_scheduler.config and are
read from the environment.
"""
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Mapping, Tuple

from print_scheduler.datetime_utils import DEFAULT_UTC_OFFSET_HOURS


class SchedulingConfig:
    """
    Business constants for scheduling calculations.

    Shift window and capacity are fixed: 08:00-17:30, Monday to Friday,
    510 minutes per stage per day.
    """

    # Shift window (local time)
    SHIFT_START_HOUR: int = 8
    SHIFT_START_MINUTE: int = 0
    SHIFT_END_HOUR: int = 17
    SHIFT_END_MINUTE: int = 30

    # One capacity day for one stage
    DAILY_CAPACITY_MINUTES: int = 510

    # Monday=0 ... Friday=4
    WORKING_WEEKDAYS = (0, 1, 2, 3, 4)

    # Slot search
    DEFAULT_HORIZON_DAYS: int = 60

    # Roll the cursor to the next day when less than this remains after a stage
    DEFAULT_ROLLOVER_MINUTES: int = 60

    # Persistence retry policy
    DEFAULT_RETRY_ATTEMPTS: int = 3
    DEFAULT_RETRY_DELAY_SECONDS: float = 0.5

    # Due-date fast path (job intake)
    PREFLIGHT_MINUTES: int = 10
    PROOFING_WINDOW_MINUTES: int = 8 * 60
    ESTIMATE_MINUTES_PER_WORKING_DAY: int = 480
    FALLBACK_WORKING_DAYS: int = 3
    DUE_DATE_BUFFER_DAYS: int = 1

    # Full scheduler due-date buffer (calendar days after final stage)
    COMPLETION_BUFFER_DAYS: int = 1

    # Stage timing fallback
    FALLBACK_SPEED_PER_HOUR: float = 100.0
    FALLBACK_MAKE_READY_MINUTES: int = 10

    # Speed units understood by the timing calculation: minutes = quantity / speed * factor
    SPEED_UNIT_MINUTES_PER_UNIT_FACTOR: Dict[str, float] = {
        'per_hour': 60.0,
        'sheets_per_hour': 60.0,
        'items_per_hour': 60.0,
        'per_minute': 1.0,
    }

    # Units where speed is minutes per item: minutes = quantity * speed
    DURATION_SPEED_UNITS = ('minutes_per_item',)

    # Parts shared by every part track
    SHARED_PART_ASSIGNMENTS = ('both',)

    @classmethod
    def shift_start_offset(cls) -> int:
        """Minutes from midnight at which the shift opens."""
        return cls.SHIFT_START_HOUR * 60 + cls.SHIFT_START_MINUTE

    @classmethod
    def shift_end_offset(cls) -> int:
        """Minutes from midnight at which the shift closes."""
        return cls.SHIFT_END_HOUR * 60 + cls.SHIFT_END_MINUTE

    @classmethod
    def get_speed_unit_factor(cls, speed_unit: str) -> float:
        """
        Get the production-minutes factor for a speed unit.

        Args:
            speed_unit: Unit name (e.g., 'per_hour', 'per_minute')

        Returns:
            float: Factor so that minutes = quantity / speed * factor.
            Unknown units are treated as per_hour.
        """
        if not speed_unit:
            return cls.SPEED_UNIT_MINUTES_PER_UNIT_FACTOR['per_hour']

        normalized = speed_unit.strip().lower()
        return cls.SPEED_UNIT_MINUTES_PER_UNIT_FACTOR.get(
            normalized,
            cls.SPEED_UNIT_MINUTES_PER_UNIT_FACTOR['per_hour'],
        )


@dataclass
class SchedulerSettings:
    """Runtime tunables for a scheduling run, read from app config."""
    utc_offset_hours: float = DEFAULT_UTC_OFFSET_HOURS
    horizon_days: int = SchedulingConfig.DEFAULT_HORIZON_DAYS
    rollover_minutes: int = SchedulingConfig.DEFAULT_ROLLOVER_MINUTES
    retry_attempts: int = SchedulingConfig.DEFAULT_RETRY_ATTEMPTS
    retry_delay_seconds: float = SchedulingConfig.DEFAULT_RETRY_DELAY_SECONDS
    holidays: Tuple[date, ...] = ()

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "SchedulerSettings":
        """
        Build settings from a Flask config (or any mapping).

        Missing keys keep their defaults.
        """
        def pick(key, cast, default):
            value = config.get(key)
            if value is None or value == "":
                return default
            return cast(value)

        return cls(
            utc_offset_hours=pick("SCHEDULER_UTC_OFFSET_HOURS", float, cls.utc_offset_hours),
            horizon_days=pick("SCHEDULER_HORIZON_DAYS", int, cls.horizon_days),
            rollover_minutes=pick("SCHEDULER_ROLLOVER_MINUTES", int, cls.rollover_minutes),
            retry_attempts=pick("SCHEDULER_PERSIST_RETRY_ATTEMPTS", int, cls.retry_attempts),
            retry_delay_seconds=pick("SCHEDULER_PERSIST_RETRY_DELAY_SECONDS", float, cls.retry_delay_seconds),
            holidays=parse_holidays(config.get("SCHEDULER_HOLIDAYS")),
        )


def parse_holidays(value) -> Tuple[date, ...]:
    """Parse holidays given as comma-separated ISO dates or an iterable of dates."""
    if not value:
        return ()
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    else:
        items = list(value)
    return tuple(
        item if isinstance(item, date) else date.fromisoformat(str(item))
        for item in items
    )
