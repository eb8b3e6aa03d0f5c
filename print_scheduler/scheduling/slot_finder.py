"""
Greedy first-fit search for the next time a stage can take a piece of work.

A duration is never split across days. If it does not fit what is left of
the candidate day, for the shift or for the stage's capacity, it is deferred
whole to the next working day. The search is bounded by a horizon of working
days so it always terminates.
"""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple

from print_scheduler.errors import NoCapacityFoundError, ValidationError
from print_scheduler.logging_config import get_logger
from print_scheduler.scheduling.calendar import WorkingCalendar
from print_scheduler.scheduling.capacity import CapacityTracker
from print_scheduler.scheduling.config import SchedulingConfig
from print_scheduler.scheduling.conflicts import ensure_no_conflict
from print_scheduler.scheduling.records import SchedulingSlot

logger = get_logger(__name__)


@dataclass
class SlotCandidate:
    """Where a duration fits, before it is reserved."""
    stage_id: int
    day: date
    start_offset: int
    duration_minutes: int

    @property
    def end_offset(self) -> int:
        return self.start_offset + self.duration_minutes


def first_gap(
    busy: List[Tuple[int, int]],
    earliest_offset: int,
    duration_minutes: int,
    day_minutes: int,
) -> Optional[int]:
    """
    Earliest start >= earliest_offset where duration fits between busy intervals.

    Args:
        busy: Sorted (start, end) offsets already taken on the day
        earliest_offset: Minutes from shift start before which nothing may start
        duration_minutes: Length of the work
        day_minutes: Bookable minutes in the day

    Returns:
        int: Start offset, or None if no gap on the day is long enough
    """
    cursor = earliest_offset
    for busy_start, busy_end in busy:
        if busy_end <= cursor:
            continue
        if cursor + duration_minutes <= busy_start:
            return cursor
        cursor = max(cursor, busy_end)
    if cursor + duration_minutes <= day_minutes:
        return cursor
    return None


class SlotFinder:
    """Finds and reserves slots on a stage against a CapacityTracker."""

    def __init__(
        self,
        calendar: WorkingCalendar,
        horizon_days: int = SchedulingConfig.DEFAULT_HORIZON_DAYS,
    ):
        if horizon_days <= 0:
            raise ValidationError("horizon_days", horizon_days, "must be positive")
        self.calendar = calendar
        self.horizon_days = horizon_days

    def find(
        self,
        stage_id: int,
        duration_minutes: int,
        earliest_day: date,
        earliest_offset: int,
        tracker: CapacityTracker,
    ) -> SlotCandidate:
        """
        Search forward from (earliest_day, earliest_offset) for the first fit.

        Raises:
            ValidationError: If the duration is not positive.
            NoCapacityFoundError: If nothing fits within the horizon, or the
                duration is longer than any day can hold.
        """
        capacity = tracker.daily_capacity
        # Work is booked within the first capacity-day minutes after opening
        day_minutes = min(self.calendar.day_minutes, capacity)

        if duration_minutes <= 0:
            raise ValidationError("duration_minutes", duration_minutes, "must be positive")
        if duration_minutes > day_minutes:
            raise NoCapacityFoundError(stage_id, duration_minutes, self.horizon_days)

        day = earliest_day
        offset = max(0, earliest_offset)
        if offset >= day_minutes:
            day = self.calendar.next_working_date(day)
            offset = 0

        examined = 0
        while examined < self.horizon_days:
            # Step 1: weekends and holidays don't count against the horizon
            if not self.calendar.is_working_day(day):
                day = self.calendar.next_working_date(day)
                offset = 0
                continue
            examined += 1

            # Step 2: what is left of the shift and of the stage's capacity
            remaining_intraday = day_minutes - offset
            remaining_capacity = capacity - tracker.allocated(stage_id, day)

            # Step 3: accept the earliest non-overlapping start on this day
            if duration_minutes <= min(remaining_intraday, remaining_capacity):
                busy = tracker.busy_intervals(stage_id, day, self.calendar.time_to_offset)
                start = first_gap(busy, offset, duration_minutes, day_minutes)
                if start is not None:
                    return SlotCandidate(stage_id, day, start, duration_minutes)

            # Step 4: defer whole to the next working day
            day = self.calendar.next_working_date(day)
            offset = 0

        logger.warning(
            "Slot search horizon exhausted",
            stage_id=stage_id,
            duration_minutes=duration_minutes,
            earliest_day=earliest_day.isoformat(),
            horizon_days=self.horizon_days,
        )
        raise NoCapacityFoundError(stage_id, duration_minutes, self.horizon_days)

    def reserve(
        self,
        candidate: SlotCandidate,
        job_id: int,
        tracker: CapacityTracker,
        stage_instance_id: Optional[int] = None,
    ) -> SchedulingSlot:
        """
        Turn a candidate into a committed slot with a queue position.

        The overlap check runs first and is a hard precondition.

        Raises:
            ConflictError: If the slot overlaps a committed slot of the stage.
            CapacityExceededError: If the stage's day is already full.
        """
        slot = SchedulingSlot(
            stage_id=candidate.stage_id,
            job_id=job_id,
            start=self.calendar.offset_to_time(candidate.day, candidate.start_offset),
            end=self.calendar.offset_to_time(candidate.day, candidate.end_offset),
            stage_instance_id=stage_instance_id,
        )
        ensure_no_conflict(slot, tracker.slots(candidate.stage_id, candidate.day))
        tracker.allocate(candidate.stage_id, candidate.day, candidate.duration_minutes, slot)
        return slot

    def place(
        self,
        stage_id: int,
        duration_minutes: int,
        earliest_day: date,
        earliest_offset: int,
        tracker: CapacityTracker,
        job_id: int,
        stage_instance_id: Optional[int] = None,
    ) -> SchedulingSlot:
        """Find and reserve in one step."""
        candidate = self.find(stage_id, duration_minutes, earliest_day, earliest_offset, tracker)
        return self.reserve(candidate, job_id, tracker, stage_instance_id)
