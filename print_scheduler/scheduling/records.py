"""
Plain records passed between the repository and the scheduling core.

The core never sees ORM rows or loose dictionaries; rows are converted into
these records at the repository boundary, where they are validated.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

from print_scheduler.errors import ValidationError


class StageStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"

    @classmethod
    def coerce(cls, value: Any) -> "StageStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValidationError("status", value, f"must be one of: {valid}")


@dataclass
class ProductionStage:
    """A workstation/process step that jobs flow through."""
    id: int
    name: str
    supports_parts: bool = False
    running_speed_per_hour: Optional[float] = None
    make_ready_minutes: Optional[int] = None
    speed_unit: str = 'per_hour'
    ignore_quantity: bool = False


@dataclass
class TimingSource:
    """Speed/make-ready settings from a stage default or a job specification."""
    running_speed_per_hour: Optional[float] = None
    make_ready_minutes: Optional[int] = None
    speed_unit: Optional[str] = None
    ignore_quantity: bool = False
    name: Optional[str] = None


@dataclass
class StageInstance:
    """One stage of one job's workflow."""
    id: int
    job_id: int
    stage_id: int
    status: StageStatus
    stage_order: int
    supports_parts: bool = False
    part_assignment: Optional[str] = None
    dependency_group: Optional[str] = None
    estimated_duration_minutes: Optional[int] = None
    scheduled_date: Optional[date] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    queue_position: Optional[int] = None
    stage_name: Optional[str] = None

    def __post_init__(self):
        self.status = StageStatus.coerce(self.status)

        if self.stage_order is None or isinstance(self.stage_order, bool):
            raise ValidationError("stage_order", self.stage_order, "must be an integer")
        try:
            self.stage_order = int(self.stage_order)
        except (TypeError, ValueError):
            raise ValidationError("stage_order", self.stage_order, "must be an integer")

        if self.estimated_duration_minutes is not None:
            try:
                minutes = int(self.estimated_duration_minutes)
            except (TypeError, ValueError):
                raise ValidationError(
                    "estimated_duration_minutes", self.estimated_duration_minutes,
                    "must be an integer",
                )
            if minutes <= 0:
                raise ValidationError(
                    "estimated_duration_minutes", self.estimated_duration_minutes,
                    "must be positive",
                )
            self.estimated_duration_minutes = minutes

        # Normalize empty tags to None
        self.part_assignment = (self.part_assignment or '').strip().lower() or None
        self.dependency_group = (self.dependency_group or '').strip() or None

    @property
    def is_scheduled(self) -> bool:
        return self.scheduled_start is not None and self.scheduled_end is not None

    def sort_key(self):
        return (self.stage_order, self.part_assignment or '', self.id)


@dataclass
class SchedulingSlot:
    """A committed or proposed block of time on one stage."""
    stage_id: int
    job_id: int
    start: datetime
    end: datetime
    stage_instance_id: Optional[int] = None
    queue_position: Optional[int] = None

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError(
                "slot", f"{self.start.isoformat()}-{self.end.isoformat()}",
                "start must be before end",
            )

    @property
    def day(self) -> date:
        return self.start.date()

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def label(self) -> str:
        owner = f"jsi {self.stage_instance_id}" if self.stage_instance_id else f"job {self.job_id}"
        return f"{owner} {self.start:%Y-%m-%d %H:%M}-{self.end:%H:%M}"


@dataclass
class ScheduleUpdate:
    """Schedule fields written back for one stage instance."""
    scheduled_date: date
    start: datetime
    end: datetime
    queue_position: int

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.scheduled_date.isoformat(),
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'queue_position': self.queue_position,
        }


@dataclass
class DueDateUpdate:
    """Derived due date fields written back for one job."""
    due_date: date
    estimated_completion_date: date


@dataclass
class ScheduledStage:
    """A stage instance together with the slot the scheduler gave it."""
    stage_instance_id: int
    slot: SchedulingSlot

    def to_update(self) -> ScheduleUpdate:
        return ScheduleUpdate(
            scheduled_date=self.slot.day,
            start=self.slot.start,
            end=self.slot.end,
            queue_position=self.slot.queue_position,
        )


@dataclass
class JobSchedule:
    """Result of scheduling one job's pending stages."""
    job_id: int
    stages: list = field(default_factory=list)
    due_date: Optional[date] = None
    estimated_completion_date: Optional[date] = None

    @property
    def due_date_update(self) -> Optional[DueDateUpdate]:
        if self.due_date is None or self.estimated_completion_date is None:
            return None
        return DueDateUpdate(
            due_date=self.due_date,
            estimated_completion_date=self.estimated_completion_date,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'job_id': self.job_id,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'estimated_completion_date': (
                self.estimated_completion_date.isoformat()
                if self.estimated_completion_date else None
            ),
            'stages': [
                {'stage_instance_id': s.stage_instance_id, 'stage_id': s.slot.stage_id, **s.to_update().to_dict()}
                for s in self.stages
            ],
        }
