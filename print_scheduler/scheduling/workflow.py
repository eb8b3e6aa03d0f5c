"""
Places a job's pending stages one after another on the calendar.

Each stage starts no earlier than the end of the previous one. When less
than the rollover threshold remains in the day after a stage, the next stage
starts on the next working day rather than in a sliver at day end.
"""
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from print_scheduler.errors import ValidationError
from print_scheduler.logging_config import get_logger
from print_scheduler.scheduling.calendar import WorkingCalendar
from print_scheduler.scheduling.capacity import CapacityTracker
from print_scheduler.scheduling.config import SchedulingConfig
from print_scheduler.scheduling.records import JobSchedule, ScheduledStage, StageInstance, StageStatus
from print_scheduler.scheduling.slot_finder import SlotFinder

logger = get_logger(__name__)


class WorkflowScheduler:
    """
    Capacity-aware scheduler for one job at a time.

    Args:
        calendar: Working calendar used for every time calculation
        slot_finder: Slot search bound to the same calendar
        clock: Callable returning the current time; defaults to calendar.now
        rollover_minutes: Minimum minutes that must remain in the day for the
            next stage to start on it
    """

    def __init__(
        self,
        calendar: WorkingCalendar,
        slot_finder: Optional[SlotFinder] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rollover_minutes: int = SchedulingConfig.DEFAULT_ROLLOVER_MINUTES,
    ):
        self.calendar = calendar
        self.slot_finder = slot_finder or SlotFinder(calendar)
        self.clock = clock or calendar.now
        self.rollover_minutes = rollover_minutes

    def initial_cursor(self, start: Optional[datetime] = None) -> datetime:
        """
        Where the first stage may start.

        Raises:
            ValidationError: If an explicit start lies in the past.
        """
        now = self.clock()
        if start is None:
            return self.calendar.next_working_day_start(now)
        start = self.calendar.ensure_not_past(start, now)
        return self.calendar.normalize_forward(start)

    def schedule_job(
        self,
        job_id: int,
        instances: Iterable[StageInstance],
        tracker: CapacityTracker,
        start: Optional[datetime] = None,
    ) -> JobSchedule:
        """
        Place every pending stage of the job in ascending stage_order.

        Active and completed instances are left alone. If any stage cannot be
        placed, the tracker is restored to its state before the job and the
        error propagates.

        Returns:
            JobSchedule: Slots per stage plus due date (final stage day + 1
            calendar day) and estimated completion (final stage day)
        """
        pending = sorted(
            (i for i in instances if i.status == StageStatus.PENDING),
            key=lambda i: i.sort_key(),
        )
        result = JobSchedule(job_id=job_id)
        if not pending:
            logger.info("No pending stages to schedule", job_id=job_id)
            return result

        cursor = self.initial_cursor(start)
        day = cursor.date()
        offset = self.calendar.time_to_offset(cursor)

        snapshot = tracker.checkpoint()
        try:
            for instance in pending:
                if instance.estimated_duration_minutes is None:
                    raise ValidationError(
                        "estimated_duration_minutes", None,
                        f"stage instance {instance.id} has no duration",
                    )

                slot = self.slot_finder.place(
                    stage_id=instance.stage_id,
                    duration_minutes=instance.estimated_duration_minutes,
                    earliest_day=day,
                    earliest_offset=offset,
                    tracker=tracker,
                    job_id=job_id,
                    stage_instance_id=instance.id,
                )
                result.stages.append(ScheduledStage(instance.id, slot))

                day = slot.day
                offset = self.calendar.time_to_offset(slot.end)
                if self.calendar.remaining_minutes(slot.end) < self.rollover_minutes:
                    day = self.calendar.next_working_date(day)
                    offset = 0
        except Exception:
            tracker.restore(snapshot)
            raise

        final_day = result.stages[-1].slot.day
        result.estimated_completion_date = final_day
        result.due_date = final_day + timedelta(days=SchedulingConfig.COMPLETION_BUFFER_DAYS)

        logger.info(
            "Job scheduled",
            job_id=job_id,
            stages=len(result.stages),
            due_date=result.due_date.isoformat(),
        )
        return result
