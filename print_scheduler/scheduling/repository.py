"""
Persistence boundary for the scheduler.

The scheduling core talks to storage only through SchedulingRepository.
SqlAlchemySchedulingRepository implements it on Flask-SQLAlchemy and turns
rows into validated records; stored start/end times are naive UTC.
"""
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterator, List, Optional

from sqlalchemy import event, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from print_scheduler.datetime_utils import from_utc_naive, get_local_timezone, to_utc_naive, utcnow
from print_scheduler.errors import CapacityExceededError, ConflictError, PersistenceError
from print_scheduler.logging_config import get_logger
from print_scheduler.models import JobStageInstance, ProductionJob, RunStatus, SchedulingRun, db
from print_scheduler.scheduling.config import SchedulingConfig
from print_scheduler.scheduling.due_dates import due_date_warning_level
from print_scheduler.scheduling.records import (
    DueDateUpdate,
    ProductionStage,
    ScheduleUpdate,
    SchedulingSlot,
    StageInstance,
    StageStatus,
    TimingSource,
)
from print_scheduler.scheduling.timing import calculate_stage_timing

logger = get_logger(__name__)


@dataclass
class TimingInput:
    """What the timing calculation needs for one stage instance."""
    stage_instance_id: int
    quantity: Optional[int]
    stage: ProductionStage
    specification: Optional[TimingSource]


class SchedulingRepository(ABC):
    """Storage operations the scheduler relies on."""

    @abstractmethod
    def fetch_pending_stage_instances_for_job(self, job_id: int) -> List[StageInstance]:
        ...

    @abstractmethod
    def fetch_all_pending_stage_instances(self) -> List[StageInstance]:
        ...

    @abstractmethod
    def fetch_job_stage_instances(self, job_id: int) -> List[StageInstance]:
        ...

    @abstractmethod
    def fetch_max_queue_position(self, stage_id: int, day: date) -> int:
        ...

    @abstractmethod
    def fetch_committed_slots(self, exclude_pending: bool = False) -> List[SchedulingSlot]:
        ...

    @abstractmethod
    def clear_pending_schedules(self, job_id: Optional[int] = None) -> List[int]:
        ...

    @abstractmethod
    def upsert_stage_schedule(self, stage_instance_id: int, update: ScheduleUpdate) -> None:
        ...

    @abstractmethod
    def upsert_job_due_date(self, job_id: int, update: DueDateUpdate) -> None:
        ...

    @abstractmethod
    def job_exists(self, job_id: int) -> bool:
        ...

    @abstractmethod
    def fetch_timing_inputs(self, job_id: int) -> List[TimingInput]:
        ...

    @abstractmethod
    def update_stage_duration(self, stage_instance_id: int, minutes: int) -> None:
        ...

    @abstractmethod
    def flush(self) -> None:
        ...

    @abstractmethod
    def transaction(self):
        """Context manager: commit on success, roll back on any error."""

    @abstractmethod
    def record_run(self, **fields) -> None:
        ...


def _stage_record(row) -> ProductionStage:
    return ProductionStage(
        id=row.id,
        name=row.name,
        supports_parts=bool(row.supports_parts),
        running_speed_per_hour=row.running_speed_per_hour,
        make_ready_minutes=row.make_ready_minutes,
        speed_unit=row.speed_unit or 'per_hour',
        ignore_quantity=bool(row.ignore_quantity),
    )


def _specification_record(row) -> Optional[TimingSource]:
    if row is None:
        return None
    return TimingSource(
        running_speed_per_hour=row.running_speed_per_hour,
        make_ready_minutes=row.make_ready_minutes,
        speed_unit=row.speed_unit,
        ignore_quantity=bool(row.ignore_quantity),
        name=row.name,
    )


class SqlAlchemySchedulingRepository(SchedulingRepository):
    """
    Repository over the Flask-SQLAlchemy session.

    Args:
        session: SQLAlchemy session; defaults to db.session
        utc_offset_hours: Shop offset used to convert stored UTC times
    """

    def __init__(self, session: Optional[Session] = None, utc_offset_hours: Optional[float] = None):
        self.session = session or db.session
        self.tz = get_local_timezone(utc_offset_hours)

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    def _to_record(self, row: JobStageInstance) -> StageInstance:
        """Validated record for a row; a missing duration is computed from timing."""
        stage = _stage_record(row.stage)
        duration = row.estimated_duration_minutes
        if duration is None:
            quantity = row.quantity if row.quantity is not None else (row.job.quantity if row.job else None)
            duration = calculate_stage_timing(
                quantity, stage, _specification_record(row.specification)
            ).estimated_duration_minutes

        return StageInstance(
            id=row.id,
            job_id=row.job_id,
            stage_id=row.production_stage_id,
            status=row.status,
            stage_order=row.stage_order,
            supports_parts=stage.supports_parts,
            part_assignment=row.part_assignment,
            dependency_group=row.dependency_group,
            estimated_duration_minutes=duration,
            scheduled_date=row.scheduled_date,
            scheduled_start=from_utc_naive(row.scheduled_start_at, self.tz),
            scheduled_end=from_utc_naive(row.scheduled_end_at, self.tz),
            queue_position=row.queue_position,
            stage_name=stage.name,
        )

    def _to_slot(self, row: JobStageInstance) -> SchedulingSlot:
        return SchedulingSlot(
            stage_id=row.production_stage_id,
            job_id=row.job_id,
            start=from_utc_naive(row.scheduled_start_at, self.tz),
            end=from_utc_naive(row.scheduled_end_at, self.tz),
            stage_instance_id=row.id,
            queue_position=row.queue_position,
        )

    def _query(self, operation: str, fn):
        try:
            return fn()
        except SQLAlchemyError as e:
            logger.error("Repository query failed", operation=operation, error=str(e))
            raise PersistenceError(operation, e)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_pending_stage_instances_for_job(self, job_id: int) -> List[StageInstance]:
        rows = self._query("fetch_pending_stage_instances_for_job", lambda: (
            self.session.query(JobStageInstance)
            .filter(JobStageInstance.job_id == job_id, JobStageInstance.status == StageStatus.PENDING.value)
            .order_by(JobStageInstance.stage_order, JobStageInstance.id)
            .all()
        ))
        return [self._to_record(r) for r in rows]

    def fetch_all_pending_stage_instances(self) -> List[StageInstance]:
        rows = self._query("fetch_all_pending_stage_instances", lambda: (
            self.session.query(JobStageInstance)
            .filter(JobStageInstance.status == StageStatus.PENDING.value)
            .order_by(JobStageInstance.job_id, JobStageInstance.stage_order, JobStageInstance.id)
            .all()
        ))
        return [self._to_record(r) for r in rows]

    def fetch_job_stage_instances(self, job_id: int) -> List[StageInstance]:
        rows = self._query("fetch_job_stage_instances", lambda: (
            self.session.query(JobStageInstance)
            .filter(JobStageInstance.job_id == job_id)
            .order_by(JobStageInstance.stage_order, JobStageInstance.id)
            .all()
        ))
        return [self._to_record(r) for r in rows]

    def fetch_max_queue_position(self, stage_id: int, day: date) -> int:
        value = self._query("fetch_max_queue_position", lambda: (
            self.session.query(func.max(JobStageInstance.queue_position))
            .filter(
                JobStageInstance.production_stage_id == stage_id,
                JobStageInstance.scheduled_date == day,
            )
            .scalar()
        ))
        return value or 0

    def fetch_committed_slots(self, exclude_pending: bool = False) -> List[SchedulingSlot]:
        def run():
            query = self.session.query(JobStageInstance).filter(
                JobStageInstance.scheduled_start_at.isnot(None),
                JobStageInstance.scheduled_end_at.isnot(None),
            )
            if exclude_pending:
                query = query.filter(JobStageInstance.status != StageStatus.PENDING.value)
            return query.order_by(JobStageInstance.scheduled_start_at).all()

        return [self._to_slot(r) for r in self._query("fetch_committed_slots", run)]

    def job_exists(self, job_id: int) -> bool:
        return self._query("job_exists", lambda: self.session.get(ProductionJob, job_id)) is not None

    def fetch_timing_inputs(self, job_id: int) -> List[TimingInput]:
        rows = self._query("fetch_timing_inputs", lambda: (
            self.session.query(JobStageInstance)
            .filter(JobStageInstance.job_id == job_id, JobStageInstance.status == StageStatus.PENDING.value)
            .order_by(JobStageInstance.stage_order, JobStageInstance.id)
            .all()
        ))
        return [
            TimingInput(
                stage_instance_id=r.id,
                quantity=r.quantity if r.quantity is not None else (r.job.quantity if r.job else None),
                stage=_stage_record(r.stage),
                specification=_specification_record(r.specification),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def clear_pending_schedules(self, job_id: Optional[int] = None) -> List[int]:
        """Null the schedule fields of pending instances (of one job, or all)."""
        def run():
            query = self.session.query(JobStageInstance).filter(
                JobStageInstance.status == StageStatus.PENDING.value,
                JobStageInstance.scheduled_start_at.isnot(None),
            )
            if job_id is not None:
                query = query.filter(JobStageInstance.job_id == job_id)
            rows = query.all()
            for row in rows:
                row.scheduled_date = None
                row.scheduled_start_at = None
                row.scheduled_end_at = None
                row.queue_position = None
            self.session.flush()
            return [row.id for row in rows]

        cleared = self._query("clear_pending_schedules", run)
        logger.info("Cleared pending schedules", job_id=job_id, count=len(cleared))
        return cleared

    def upsert_stage_schedule(self, stage_instance_id: int, update: ScheduleUpdate) -> None:
        row = self._query("upsert_stage_schedule", lambda: self.session.get(JobStageInstance, stage_instance_id))
        if row is None:
            raise PersistenceError(f"upsert_stage_schedule: stage instance {stage_instance_id} not found")
        row.scheduled_date = update.scheduled_date
        row.scheduled_start_at = to_utc_naive(update.start)
        row.scheduled_end_at = to_utc_naive(update.end)
        row.queue_position = update.queue_position

    def upsert_job_due_date(self, job_id: int, update: DueDateUpdate) -> None:
        job = self._query("upsert_job_due_date", lambda: self.session.get(ProductionJob, job_id))
        if job is None:
            raise PersistenceError(f"upsert_job_due_date: job {job_id} not found")
        job.due_date = update.due_date
        job.estimated_completion_date = update.estimated_completion_date
        job.due_date_warning_level = due_date_warning_level(
            job.promised_date, update.estimated_completion_date
        ).level
        job.last_scheduled_at = utcnow()

    def update_stage_duration(self, stage_instance_id: int, minutes: int) -> None:
        row = self._query("update_stage_duration", lambda: self.session.get(JobStageInstance, stage_instance_id))
        if row is None:
            raise PersistenceError(f"update_stage_duration: stage instance {stage_instance_id} not found")
        row.estimated_duration_minutes = minutes

    def flush(self) -> None:
        try:
            self.session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError("flush", e)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Transaction rolled back", error=str(e), error_type=type(e).__name__)
            raise PersistenceError("transaction", e)
        except Exception:
            self.session.rollback()
            raise

    def record_run(self, **fields) -> None:
        """Write a SchedulingRun audit row in its own transaction."""
        try:
            run = SchedulingRun(
                operation_id=fields["operation_id"],
                run_type=fields["run_type"],
                status=fields.get("status", RunStatus.COMPLETED),
                job_id=fields.get("job_id"),
                started_at=fields.get("started_at") or utcnow(),
                completed_at=utcnow(),
                duration_seconds=fields.get("duration_seconds"),
                wrote_slots=fields.get("wrote_slots", 0),
                updated_jsi=fields.get("updated_jsi", 0),
                violations=fields.get("violations") or [],
                error_type=fields.get("error_type"),
                error_message=fields.get("error_message"),
            )
            self.session.add(run)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            # Audit row is best effort
            logger.warning("Failed to record scheduling run", error=str(e), operation_id=fields.get("operation_id"))


# ----------------------------------------------------------------------
# Storage-layer guard
# ----------------------------------------------------------------------

def _utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc)


def check_stage_day(rows, daily_capacity: int = SchedulingConfig.DAILY_CAPACITY_MINUTES) -> None:
    """
    Raise if scheduled rows of one stage and day overlap or exceed capacity.

    Raises:
        ConflictError: Two rows overlap in time.
        CapacityExceededError: Total minutes exceed daily capacity.
    """
    rows = sorted(rows, key=lambda r: r.scheduled_start_at)
    if not rows:
        return
    stage_id = rows[0].production_stage_id
    day = rows[0].scheduled_date

    total = sum(
        int((r.scheduled_end_at - r.scheduled_start_at).total_seconds() // 60) for r in rows
    )
    if total > daily_capacity:
        raise CapacityExceededError(stage_id, day, total, daily_capacity)

    for earlier, later in zip(rows, rows[1:]):
        if max(earlier.scheduled_start_at, later.scheduled_start_at) < min(earlier.scheduled_end_at, later.scheduled_end_at):
            raise ConflictError(
                stage_id,
                f"jsi {later.id} {_utc(later.scheduled_start_at).isoformat()}",
                [f"jsi {earlier.id} {_utc(earlier.scheduled_start_at).isoformat()}"],
            )


def enforce_schedule_invariants(session: Session, flush_context, instances) -> None:
    """before_flush hook: no overlap and no over-capacity day per stage."""
    touched = [
        obj for obj in list(session.new) + list(session.dirty)
        if isinstance(obj, JobStageInstance)
    ]
    scheduled = [
        obj for obj in touched
        if obj.scheduled_start_at is not None and obj.scheduled_end_at is not None
    ]
    if not scheduled:
        return

    touched_ids = {obj.id for obj in touched if obj.id is not None}
    groups = defaultdict(list)
    for obj in scheduled:
        groups[(obj.production_stage_id, obj.scheduled_date)].append(obj)

    with session.no_autoflush:
        for (stage_id, day), rows in groups.items():
            query = session.query(JobStageInstance).filter(
                JobStageInstance.production_stage_id == stage_id,
                JobStageInstance.scheduled_date == day,
                JobStageInstance.scheduled_start_at.isnot(None),
            )
            if touched_ids:
                query = query.filter(JobStageInstance.id.notin_(touched_ids))
            check_stage_day(rows + query.all())


def install_schedule_guard() -> None:
    """Register the before_flush guard on every SQLAlchemy session (once)."""
    if not event.contains(Session, "before_flush", enforce_schedule_invariants):
        event.listen(Session, "before_flush", enforce_schedule_invariants)
