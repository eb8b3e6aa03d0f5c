"""
Exception hierarchy for the production scheduler.

Every error raised by the scheduling core derives from SchedulingError so
callers can catch the whole family with one except clause.
"""
from typing import Any, Dict, List, Optional


class SchedulingError(Exception):
    """Base exception for all scheduling errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context for debugging.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message


class ValidationError(SchedulingError):
    """Raised for malformed input: bad times, past-dated starts, bad rows."""

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        message = f"Invalid {field}: {reason}. Got: {value!r}"
        super().__init__(message, {"field": field})


class CapacityExceededError(SchedulingError):
    """Raised when an allocation would push a stage past its daily capacity."""

    def __init__(self, stage_id: Any, day: Any, requested: int, available: int):
        self.stage_id = stage_id
        self.day = day
        self.requested = requested
        self.available = available
        message = (
            f"Stage {stage_id} on {day} cannot take {requested} minutes, "
            f"only {available} available"
        )
        super().__init__(message, {
            "stage_id": stage_id,
            "day": str(day),
            "requested": requested,
            "available": available,
        })


class NoCapacityFoundError(SchedulingError):
    """Raised when the slot search exhausts its horizon without a fit."""

    def __init__(self, stage_id: Any, duration_minutes: int, horizon_days: int):
        self.stage_id = stage_id
        self.duration_minutes = duration_minutes
        self.horizon_days = horizon_days
        message = (
            f"No slot of {duration_minutes} minutes found for stage {stage_id} "
            f"within {horizon_days} working days"
        )
        super().__init__(message, {
            "stage_id": stage_id,
            "duration_minutes": duration_minutes,
            "horizon_days": horizon_days,
        })


class ConflictError(SchedulingError):
    """Raised when a proposed slot overlaps a committed slot of the same stage."""

    def __init__(self, stage_id: Any, proposed: str, conflicts: List[str]):
        self.stage_id = stage_id
        self.proposed = proposed
        self.conflicts = conflicts
        message = f"Slot {proposed} on stage {stage_id} overlaps {', '.join(conflicts)}"
        super().__init__(message, {"stage_id": stage_id, "conflict_count": len(conflicts)})


class PersistenceError(SchedulingError):
    """Raised when the repository cannot read or write scheduling data."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        cause_type = type(cause).__name__ if cause is not None else None
        message = f"Persistence failure during {operation}"
        if cause is not None:
            message = f"{message}: {cause_type} - {cause}"
        super().__init__(message, {"operation": operation, "cause_type": cause_type})


class RescheduleInProgressError(SchedulingError):
    """Raised when a reschedule run is requested while another one holds the lock."""

    def __init__(self, requested: str, current: Optional[str]):
        self.requested = requested
        self.current = current
        super().__init__(
            f"Reschedule already in progress: {current}",
            {"requested": requested, "current": current},
        )


class JobNotFoundError(SchedulingError):
    """Raised when a job id does not match any production job."""

    def __init__(self, job_id: Any):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found", {"job_id": job_id})
