"""
Due-date estimation at job intake, before full scheduling is possible.

The estimate must never block job creation: any failure, or a job with no
stage data yet, yields the fixed fallback of 3 working days plus 1 buffer day.
"""
import math
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Optional, Union

from print_scheduler.logging_config import get_logger
from print_scheduler.scheduling.calendar import WorkingCalendar
from print_scheduler.scheduling.config import SchedulingConfig

logger = get_logger(__name__)

DurationSource = Union[Iterable[Optional[int]], Callable[[], Iterable[Optional[int]]]]


@dataclass
class DueDateEstimate:
    due_date: date
    working_days: int
    total_minutes: Optional[int]
    is_fallback: bool

    def to_dict(self):
        return {
            'due_date': self.due_date.isoformat(),
            'working_days': self.working_days,
            'total_minutes': self.total_minutes,
            'is_fallback': self.is_fallback,
        }


class DueDateEstimator:
    """Fast-path due date from stage durations alone."""

    def __init__(self, calendar: Optional[WorkingCalendar] = None):
        self.calendar = calendar or WorkingCalendar()

    def fallback(self, today: date) -> DueDateEstimate:
        working_days = SchedulingConfig.FALLBACK_WORKING_DAYS
        return DueDateEstimate(
            due_date=self.calendar.add_working_days(
                today, working_days + SchedulingConfig.DUE_DATE_BUFFER_DAYS
            ),
            working_days=working_days,
            total_minutes=None,
            is_fallback=True,
        )

    def estimate(self, stage_durations: DurationSource, today: Optional[date] = None) -> DueDateEstimate:
        """
        Estimate a due date from the job's stage durations.

        Args:
            stage_durations: Durations in minutes, or a callable that fetches them.
                Unknown (None) durations are skipped.
            today: Intake date; defaults to the shop-local date

        Returns:
            DueDateEstimate: today + ceil(total / 480) working days + 1 buffer day
        """
        if today is None:
            today = self.calendar.now().date()

        try:
            if callable(stage_durations):
                stage_durations = stage_durations()
            durations = list(stage_durations or [])
            if not durations:
                logger.info("No stage data for due date estimate, using fallback", today=today.isoformat())
                return self.fallback(today)

            known = sum(int(d) for d in durations if d is not None and int(d) > 0)
            total = known + SchedulingConfig.PREFLIGHT_MINUTES + SchedulingConfig.PROOFING_WINDOW_MINUTES
            working_days = math.ceil(total / SchedulingConfig.ESTIMATE_MINUTES_PER_WORKING_DAY)
            due = self.calendar.add_working_days(
                today, working_days + SchedulingConfig.DUE_DATE_BUFFER_DAYS
            )
            return DueDateEstimate(
                due_date=due,
                working_days=working_days,
                total_minutes=total,
                is_fallback=False,
            )
        except Exception as e:
            logger.warning("Due date estimate failed, using fallback", error=str(e))
            return self.fallback(today)


def estimate_initial_due_date(
    stage_durations: DurationSource,
    today: Optional[date] = None,
    calendar: Optional[WorkingCalendar] = None,
) -> date:
    """Convenience wrapper returning only the due date."""
    return DueDateEstimator(calendar).estimate(stage_durations, today).due_date


@dataclass
class DueDateWarning:
    level: str
    days_overdue: int
    description: str


def due_date_warning_level(due_date: Optional[date], completion_date: Optional[date]) -> DueDateWarning:
    """
    Grade how far the estimated completion runs past the due date.

    green: on or before the due date, amber: 1 day late,
    red: 2 days late, critical: more than 2 days late.
    """
    if due_date is None or completion_date is None:
        return DueDateWarning('green', 0, 'No due date to compare')

    days_overdue = (completion_date - due_date).days
    if days_overdue <= 0:
        return DueDateWarning('green', 0, 'On track')
    if days_overdue == 1:
        return DueDateWarning('amber', days_overdue, 'Due date at risk')
    if days_overdue <= 2:
        return DueDateWarning('red', days_overdue, 'Due date exceeded')
    return DueDateWarning('critical', days_overdue, 'Due date significantly exceeded')
