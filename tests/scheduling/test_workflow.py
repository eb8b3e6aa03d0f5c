"""
Tests for placing a job's stages in order on the calendar.
"""
import pytest
from datetime import date

from print_scheduler.errors import NoCapacityFoundError, ValidationError
from print_scheduler.scheduling.capacity import CapacityTracker
from print_scheduler.scheduling.slot_finder import SlotFinder
from print_scheduler.scheduling.workflow import WorkflowScheduler

TUESDAY = date(2025, 3, 4)


@pytest.fixture
def scheduler(calendar, friday_evening):
    return WorkflowScheduler(calendar, SlotFinder(calendar), clock=lambda: friday_evening)


def times(calendar, slot):
    start = calendar.to_local(slot.start)
    end = calendar.to_local(slot.end)
    return start.date(), start.strftime("%H:%M"), end.strftime("%H:%M")


class TestScheduleJob:

    def test_three_sequential_stages_roll_to_next_day(self, calendar, scheduler, make_instance, monday):
        """120 + 300 fit on Monday; 200 does not fit the 90 minutes left and moves to Tuesday."""
        instances = [
            make_instance(id=1, stage_id=1, stage_order=1, estimated_duration_minutes=120),
            make_instance(id=2, stage_id=2, stage_order=2, estimated_duration_minutes=300),
            make_instance(id=3, stage_id=3, stage_order=3, estimated_duration_minutes=200),
        ]

        schedule = scheduler.schedule_job(1, instances, CapacityTracker())

        slots = [s.slot for s in schedule.stages]
        assert times(calendar, slots[0]) == (monday, "08:00", "10:00")
        assert times(calendar, slots[1]) == (monday, "10:00", "15:00")
        assert times(calendar, slots[2]) == (TUESDAY, "08:00", "11:20")
        assert schedule.estimated_completion_date == TUESDAY
        assert schedule.due_date == date(2025, 3, 5)

    def test_stages_placed_in_stage_order(self, scheduler, make_instance):
        instances = [
            make_instance(id=7, stage_id=2, stage_order=2),
            make_instance(id=8, stage_id=1, stage_order=1),
        ]
        schedule = scheduler.schedule_job(1, instances, CapacityTracker())
        assert [s.stage_instance_id for s in schedule.stages] == [8, 7]
        assert schedule.stages[0].slot.end <= schedule.stages[1].slot.start

    def test_short_remainder_below_rollover_moves_next_stage(self, calendar, friday_evening, make_instance, monday):
        scheduler = WorkflowScheduler(calendar, clock=lambda: friday_evening, rollover_minutes=120)
        instances = [
            make_instance(id=1, stage_id=1, stage_order=1, estimated_duration_minutes=480),
            make_instance(id=2, stage_id=2, stage_order=2, estimated_duration_minutes=20),
        ]

        schedule = scheduler.schedule_job(1, instances, CapacityTracker())

        assert times(calendar, schedule.stages[1].slot) == (TUESDAY, "08:00", "08:20")

    def test_remainder_above_rollover_keeps_same_day(self, calendar, scheduler, make_instance, monday):
        instances = [
            make_instance(id=1, stage_id=1, stage_order=1, estimated_duration_minutes=480),
            make_instance(id=2, stage_id=2, stage_order=2, estimated_duration_minutes=20),
        ]

        schedule = scheduler.schedule_job(1, instances, CapacityTracker())

        assert times(calendar, schedule.stages[1].slot) == (monday, "16:00", "16:20")

    def test_only_pending_stages_are_placed(self, scheduler, make_instance):
        instances = [
            make_instance(id=1, stage_order=1, status="completed"),
            make_instance(id=2, stage_order=2, status="active"),
            make_instance(id=3, stage_order=3),
        ]
        schedule = scheduler.schedule_job(1, instances, CapacityTracker())
        assert [s.stage_instance_id for s in schedule.stages] == [3]

    def test_no_pending_stages(self, scheduler, make_instance):
        schedule = scheduler.schedule_job(1, [make_instance(status="completed")], CapacityTracker())
        assert schedule.stages == []
        assert schedule.due_date is None
        assert schedule.due_date_update is None

    def test_failed_job_leaves_tracker_untouched(self, scheduler, make_instance, monday):
        tracker = CapacityTracker()
        tracker.allocate(9, monday, 30)
        instances = [
            make_instance(id=1, stage_id=1, stage_order=1, estimated_duration_minutes=60),
            make_instance(id=2, stage_id=2, stage_order=2, estimated_duration_minutes=600),
        ]

        with pytest.raises(NoCapacityFoundError):
            scheduler.schedule_job(1, instances, tracker)

        assert tracker.allocated(1, monday) == 0
        assert tracker.allocated(9, monday) == 30

    def test_missing_duration_is_rejected(self, scheduler, make_instance):
        instances = [make_instance(id=1, estimated_duration_minutes=None)]
        with pytest.raises(ValidationError):
            scheduler.schedule_job(1, instances, CapacityTracker())

    def test_queue_positions_continue_across_jobs(self, scheduler, make_instance):
        tracker = CapacityTracker()
        first = scheduler.schedule_job(1, [make_instance(id=1, job_id=1, stage_id=1)], tracker)
        second = scheduler.schedule_job(2, [make_instance(id=2, job_id=2, stage_id=1)], tracker)
        assert first.stages[0].slot.queue_position == 1
        assert second.stages[0].slot.queue_position == 2
        assert second.stages[0].slot.start == first.stages[0].slot.end


class TestInitialCursor:

    def test_default_is_next_working_day_start(self, calendar, scheduler, monday):
        assert scheduler.initial_cursor() == calendar.local_datetime(monday, 8, 0)

    def test_explicit_start_inside_hours(self, calendar, scheduler, make_instance, monday):
        start = calendar.local_datetime(monday, 10, 0)
        schedule = scheduler.schedule_job(1, [make_instance()], CapacityTracker(), start=start)
        assert schedule.stages[0].slot.start == start

    def test_explicit_weekend_start_moves_forward(self, calendar, scheduler):
        start = calendar.local_datetime(date(2025, 3, 8), 9, 0)
        assert scheduler.initial_cursor(start) == calendar.local_datetime(date(2025, 3, 10), 8, 0)

    def test_past_start_rejected(self, calendar, monday):
        now = calendar.local_datetime(monday, 12, 0)
        scheduler = WorkflowScheduler(calendar, clock=lambda: now)
        with pytest.raises(ValidationError):
            scheduler.initial_cursor(calendar.local_datetime(monday, 8, 0))
