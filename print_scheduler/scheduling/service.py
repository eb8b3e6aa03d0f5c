"""
Reschedule runs: the entry points behind the HTTP routes and the nightly job.

A run is serialized by the reschedule lock and executes inside one
transaction. Each job is scheduled in memory first, so a job that cannot be
placed leaves nothing behind and is reported as a violation while the other
jobs go ahead. A storage failure rolls the whole run back. The run is retried
a bounded number of times on persistence errors.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Set

from print_scheduler.datetime_utils import utcnow
from print_scheduler.errors import JobNotFoundError, PersistenceError, RescheduleInProgressError, SchedulingError
from print_scheduler.logging_config import SchedulingRunContext, get_logger
from print_scheduler.models import RunStatus
from print_scheduler.reschedule_lock import RescheduleLockManager, reschedule_lock_manager
from print_scheduler.scheduling.calendar import WorkingCalendar
from print_scheduler.scheduling.capacity import CapacityTracker
from print_scheduler.scheduling.config import SchedulerSettings
from print_scheduler.scheduling.conflicts import audit_slots
from print_scheduler.scheduling.dependencies import (
    DependencyChainEntry,
    build_dependency_chain,
    resolve_eligible_stages,
)
from print_scheduler.scheduling.records import JobSchedule, StageInstance
from print_scheduler.scheduling.repository import SchedulingRepository, SqlAlchemySchedulingRepository
from print_scheduler.scheduling.retry import call_with_retry
from print_scheduler.scheduling.slot_finder import SlotFinder
from print_scheduler.scheduling.timing import calculate_stage_timing
from print_scheduler.scheduling.workflow import WorkflowScheduler

logger = get_logger(__name__)


@dataclass
class RescheduleResult:
    ok: bool
    wrote_slots: int = 0
    updated_jsi: int = 0
    violations: List[str] = field(default_factory=list)
    operation_id: Optional[str] = None
    jobs: List[JobSchedule] = field(default_factory=list)

    @property
    def run_status(self) -> RunStatus:
        if not self.ok:
            return RunStatus.FAILED
        return RunStatus.PARTIAL if self.violations else RunStatus.COMPLETED

    def to_dict(self):
        return {
            'ok': self.ok,
            'wrote_slots': self.wrote_slots,
            'updated_jsi': self.updated_jsi,
            'violations': list(self.violations),
            'operation_id': self.operation_id,
        }


def group_by_job(instances: List[StageInstance]) -> "OrderedDict[int, List[StageInstance]]":
    grouped: Dict[int, List[StageInstance]] = {}
    for instance in instances:
        grouped.setdefault(instance.job_id, []).append(instance)
    return OrderedDict(sorted(grouped.items()))


class SchedulingService:
    """
    Wires the calendar, slot finder and workflow scheduler to a repository.

    Args:
        repository: Storage collaborator
        settings: Runtime tunables; defaults match the shop's standard rules
        clock: Callable returning "now"; injected by tests
        lock_manager: Reschedule lock; defaults to the process-wide one
    """

    def __init__(
        self,
        repository: SchedulingRepository,
        settings: Optional[SchedulerSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lock_manager: Optional[RescheduleLockManager] = None,
    ):
        self.repository = repository
        self.settings = settings or SchedulerSettings()
        self.calendar = WorkingCalendar(self.settings.utc_offset_hours, self.settings.holidays)
        self.slot_finder = SlotFinder(self.calendar, self.settings.horizon_days)
        self.workflow = WorkflowScheduler(
            self.calendar,
            self.slot_finder,
            clock=clock,
            rollover_minutes=self.settings.rollover_minutes,
        )
        self.lock_manager = lock_manager or reschedule_lock_manager

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def build_tracker(self, exclude_pending: bool = False, use_queue_source: bool = True) -> CapacityTracker:
        """Capacity ledger seeded with every slot already committed in storage."""
        slots = self.repository.fetch_committed_slots(exclude_pending=exclude_pending)
        return CapacityTracker.from_slots(
            slots,
            queue_position_source=self.repository.fetch_max_queue_position if use_queue_source else None,
        )

    def schedule_jobs(
        self,
        jobs: "OrderedDict[int, List[StageInstance]]",
        tracker: CapacityTracker,
        result: RescheduleResult,
        start: Optional[datetime] = None,
    ) -> List[JobSchedule]:
        """Schedule jobs in order; a job that cannot be placed becomes a violation."""
        schedules = []
        for job_id, instances in jobs.items():
            try:
                schedules.append(self.workflow.schedule_job(job_id, instances, tracker, start=start))
            except SchedulingError as e:
                logger.warning("Job could not be scheduled", job_id=job_id, error=str(e), error_type=type(e).__name__)
                result.violations.append(f"job {job_id}: {e}")
        return schedules

    def write_schedule(self, schedule: JobSchedule, result: RescheduleResult, touched: Set[int]) -> None:
        """Apply one job's slots and due date, then flush them together."""
        for stage in schedule.stages:
            self.repository.upsert_stage_schedule(stage.stage_instance_id, stage.to_update())
            touched.add(stage.stage_instance_id)
            result.wrote_slots += 1
        update = schedule.due_date_update
        if update is not None:
            self.repository.upsert_job_due_date(schedule.job_id, update)
        self.repository.flush()

    def _audit(self, tracker: CapacityTracker, result: RescheduleResult) -> None:
        breaches = audit_slots(tracker.all_slots(), self.calendar, tracker.daily_capacity)
        for breach in breaches:
            logger.warning("Schedule invariant breach", violation=breach)
        result.violations.extend(breaches)

    def _run(self, run_type: str, work: Callable[[str], RescheduleResult], job_id: Optional[int] = None) -> RescheduleResult:
        """Lock, log, retry and audit around one unit of work."""
        started_at = utcnow()
        context = SchedulingRunContext(run_type, job_id=job_id)
        try:
            with self.lock_manager.acquire(run_type):
                with context:
                    result = call_with_retry(
                        lambda: work(context.next_attempt()),
                        attempts=self.settings.retry_attempts,
                        delay_seconds=self.settings.retry_delay_seconds,
                        retry_on=(PersistenceError,),
                    )
                    context.finish(result.wrote_slots, result.updated_jsi, result.violations)
        except RescheduleInProgressError:
            raise
        except SchedulingError as e:
            result = RescheduleResult(ok=False, violations=[str(e)], operation_id=context.operation_id)
            self._record(run_type, result, started_at, context, job_id, error=e)
            return result
        except Exception as e:
            result = RescheduleResult(ok=False, violations=[str(e)], operation_id=context.operation_id)
            self._record(run_type, result, started_at, context, job_id, error=e)
            raise

        self._record(run_type, result, started_at, context, job_id)
        return result

    def _record(self, run_type, result, started_at, context, job_id=None, error=None) -> None:
        self.repository.record_run(
            operation_id=context.operation_id,
            run_type=run_type,
            status=result.run_status,
            job_id=job_id,
            started_at=started_at,
            duration_seconds=context.elapsed_seconds,
            wrote_slots=result.wrote_slots,
            updated_jsi=result.updated_jsi,
            violations=result.violations,
            error_type=type(error).__name__ if error else None,
            error_message=str(error) if error else None,
        )

    # ------------------------------------------------------------------
    # Reschedule runs
    # ------------------------------------------------------------------

    def reschedule_all_jobs(self, start: Optional[datetime] = None, run_type: str = "reschedule_all") -> RescheduleResult:
        """
        Rebuild the schedule of every pending stage instance.

        Pending schedules are cleared, the capacity ledger is rebuilt from the
        remaining (active/completed) slots, and every affected job is placed
        again in job order. Active and completed instances are never touched.
        """
        def work(operation_id: str) -> RescheduleResult:
            result = RescheduleResult(ok=True, operation_id=operation_id)
            touched: Set[int] = set()
            with self.repository.transaction():
                touched.update(self.repository.clear_pending_schedules())
                tracker = self.build_tracker()
                jobs = group_by_job(self.repository.fetch_all_pending_stage_instances())
                logger.info("Rescheduling jobs", job_count=len(jobs))

                result.jobs = self.schedule_jobs(jobs, tracker, result, start)
                for schedule in result.jobs:
                    self.write_schedule(schedule, result, touched)
                result.updated_jsi = len(touched)
                self._audit(tracker, result)
            return result

        return self._run(run_type, work)

    def reschedule_job(self, job_id: int, start: Optional[datetime] = None) -> RescheduleResult:
        """
        Reschedule one job's pending stages around everything else.

        Used when a gating event (e.g. proof approval) releases the job. The
        job is placed as a whole or not at all.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        if not self.repository.job_exists(job_id):
            raise JobNotFoundError(job_id)

        def work(operation_id: str) -> RescheduleResult:
            result = RescheduleResult(ok=True, operation_id=operation_id)
            touched: Set[int] = set()
            with self.repository.transaction():
                touched.update(self.repository.clear_pending_schedules(job_id))
                tracker = self.build_tracker()
                instances = self.repository.fetch_pending_stage_instances_for_job(job_id)
                schedule = self.workflow.schedule_job(job_id, instances, tracker, start=start)
                self.write_schedule(schedule, result, touched)
                result.jobs = [schedule]
                result.updated_jsi = len(touched)
                self._audit(tracker, result)
            return result

        return self._run("reschedule_job", work, job_id=job_id)

    # ------------------------------------------------------------------
    # Read-only helpers
    # ------------------------------------------------------------------

    def _job_instances(self, job_id: int) -> List[StageInstance]:
        if not self.repository.job_exists(job_id):
            raise JobNotFoundError(job_id)
        return self.repository.fetch_job_stage_instances(job_id)

    def eligible_stages(self, job_id: int) -> List[StageInstance]:
        return resolve_eligible_stages(self._job_instances(job_id))

    def dependency_chain(self, job_id: int) -> List[DependencyChainEntry]:
        return build_dependency_chain(self._job_instances(job_id))

    def capacity_snapshot(self, day: date) -> List[dict]:
        """Utilisation per stage for one day, with a healthy/warning/critical status."""
        tracker = self.build_tracker(use_queue_source=False)
        rows = tracker.utilisation(day)
        for row in rows:
            if row['utilisation'] > 0.9:
                row['status'] = 'critical'
            elif row['utilisation'] >= 0.7:
                row['status'] = 'warning'
            else:
                row['status'] = 'healthy'
        return rows

    def recalculate_stage_durations(self, job_id: int) -> List[dict]:
        """
        Recompute estimated durations of a job's pending stages from quantity and timing.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        if not self.repository.job_exists(job_id):
            raise JobNotFoundError(job_id)

        results = []
        with self.repository.transaction():
            for item in self.repository.fetch_timing_inputs(job_id):
                timing = calculate_stage_timing(item.quantity, item.stage, item.specification)
                self.repository.update_stage_duration(item.stage_instance_id, timing.estimated_duration_minutes)
                results.append({'stage_instance_id': item.stage_instance_id, **timing.to_dict()})
        logger.info("Stage durations recalculated", job_id=job_id, stages=len(results))
        return results


def default_service(settings: Optional[SchedulerSettings] = None, **kwargs) -> SchedulingService:
    settings = settings or SchedulerSettings()
    repository = SqlAlchemySchedulingRepository(utc_offset_hours=settings.utc_offset_hours)
    return SchedulingService(repository, settings=settings, **kwargs)


def reschedule_all_jobs(settings: Optional[SchedulerSettings] = None, start: Optional[datetime] = None) -> RescheduleResult:
    return default_service(settings).reschedule_all_jobs(start=start)


def reschedule_job(job_id: int, settings: Optional[SchedulerSettings] = None, start: Optional[datetime] = None) -> RescheduleResult:
    return default_service(settings).reschedule_job(job_id, start=start)
