"""
Shared fixtures for the scheduler tests.

Dates are anchored on Monday 2025-03-03 in the shop's UTC+02:00 timezone.
"""
import copy

import pytest
from contextlib import contextmanager
from datetime import date, timedelta

from print_scheduler.errors import PersistenceError
from print_scheduler.reschedule_lock import RescheduleLockManager
from print_scheduler.scheduling.calendar import WorkingCalendar
from print_scheduler.scheduling.records import SchedulingSlot, StageInstance, StageStatus
from print_scheduler.scheduling.repository import SchedulingRepository


MONDAY = date(2025, 3, 3)


@pytest.fixture
def calendar():
    return WorkingCalendar(utc_offset_hours=2)


@pytest.fixture
def monday():
    return MONDAY


@pytest.fixture
def friday_evening(calendar):
    """A clock reading of Friday 2025-02-28 18:00 local, so the next working day is MONDAY."""
    return calendar.local_datetime(date(2025, 2, 28), 18, 0)


@pytest.fixture
def make_instance():
    """Factory for StageInstance records with sensible defaults."""
    counter = {"next_id": 1}

    def factory(**overrides):
        values = {
            "id": counter["next_id"],
            "job_id": 1,
            "stage_id": 1,
            "status": "pending",
            "stage_order": counter["next_id"],
            "estimated_duration_minutes": 60,
        }
        values.update(overrides)
        counter["next_id"] = max(counter["next_id"], values["id"]) + 1
        return StageInstance(**values)

    return factory


class InMemoryRepository(SchedulingRepository):
    """SchedulingRepository over plain dicts, with commit/rollback snapshots."""

    def __init__(self, calendar, instances=(), job_ids=None):
        self.calendar = calendar
        self.instances = {i.id: i for i in instances}
        self.job_ids = set(job_ids) if job_ids is not None else {i.job_id for i in instances}
        self.due_dates = {}
        self.runs = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_next_commits = 0

    def _snapshot(self):
        return copy.deepcopy((self.instances, self.due_dates))

    def fetch_pending_stage_instances_for_job(self, job_id):
        return sorted(
            (i for i in self.instances.values() if i.job_id == job_id and i.status == StageStatus.PENDING),
            key=lambda i: i.sort_key(),
        )

    def fetch_all_pending_stage_instances(self):
        return sorted(
            (i for i in self.instances.values() if i.status == StageStatus.PENDING),
            key=lambda i: (i.job_id,) + i.sort_key(),
        )

    def fetch_job_stage_instances(self, job_id):
        return sorted(
            (i for i in self.instances.values() if i.job_id == job_id),
            key=lambda i: i.sort_key(),
        )

    def fetch_max_queue_position(self, stage_id, day):
        positions = [
            i.queue_position for i in self.instances.values()
            if i.stage_id == stage_id and i.scheduled_date == day and i.queue_position
        ]
        return max(positions, default=0)

    def fetch_committed_slots(self, exclude_pending=False):
        slots = []
        for i in self.instances.values():
            if not i.is_scheduled:
                continue
            if exclude_pending and i.status == StageStatus.PENDING:
                continue
            slots.append(SchedulingSlot(
                stage_id=i.stage_id, job_id=i.job_id,
                start=i.scheduled_start, end=i.scheduled_end,
                stage_instance_id=i.id, queue_position=i.queue_position,
            ))
        return slots

    def clear_pending_schedules(self, job_id=None):
        cleared = []
        for i in self.instances.values():
            if i.status != StageStatus.PENDING or not i.is_scheduled:
                continue
            if job_id is not None and i.job_id != job_id:
                continue
            i.scheduled_date = i.scheduled_start = i.scheduled_end = i.queue_position = None
            cleared.append(i.id)
        return cleared

    def upsert_stage_schedule(self, stage_instance_id, update):
        i = self.instances[stage_instance_id]
        i.scheduled_date = update.scheduled_date
        i.scheduled_start = update.start
        i.scheduled_end = update.end
        i.queue_position = update.queue_position

    def upsert_job_due_date(self, job_id, update):
        self.due_dates[job_id] = update

    def job_exists(self, job_id):
        return job_id in self.job_ids

    def fetch_timing_inputs(self, job_id):
        return []

    def update_stage_duration(self, stage_instance_id, minutes):
        self.instances[stage_instance_id].estimated_duration_minutes = minutes

    def flush(self):
        pass

    @contextmanager
    def transaction(self):
        snapshot = self._snapshot()
        try:
            yield
            if self.fail_next_commits:
                self.fail_next_commits -= 1
                raise PersistenceError("commit", RuntimeError("connection reset"))
            self.commits += 1
        except Exception:
            self.instances, self.due_dates = snapshot
            self.rollbacks += 1
            raise

    def record_run(self, **fields):
        self.runs.append(fields)


@pytest.fixture
def memory_repository(calendar):
    def factory(instances=(), job_ids=None):
        return InMemoryRepository(calendar, instances, job_ids)
    return factory


@pytest.fixture
def lock_manager():
    return RescheduleLockManager()


@pytest.fixture
def slot_at(calendar):
    """Build a SchedulingSlot from local day, HH:MM start and minutes."""
    def factory(stage_id, day, hhmm, minutes, job_id=1, stage_instance_id=None, queue_position=None):
        hour, minute = (int(part) for part in hhmm.split(":"))
        start = calendar.local_datetime(day, hour, minute)
        return SchedulingSlot(
            stage_id=stage_id,
            job_id=job_id,
            start=start,
            end=start + timedelta(minutes=minutes),
            stage_instance_id=stage_instance_id,
            queue_position=queue_position,
        )
    return factory
