"""
Capacity-aware production scheduling.

Modules:
- calendar: working days, business hours and minute offsets
- capacity: per-stage, per-day capacity ledger
- slot_finder: greedy first-fit slot search
- conflicts: overlap detection and schedule audit
- dependencies: stage eligibility and critical path
- workflow: places a job's stages in order
- due_dates: intake due-date estimate and warning levels
- timing: stage duration from quantity and speed
- repository: storage boundary
- service: reschedule runs
- preview: dry-run diff
"""
from print_scheduler.scheduling.calendar import WorkingCalendar
from print_scheduler.scheduling.capacity import CapacityKey, CapacityTracker
from print_scheduler.scheduling.config import SchedulerSettings, SchedulingConfig
from print_scheduler.scheduling.dependencies import build_dependency_chain, is_workflow_complete, resolve_eligible_stages
from print_scheduler.scheduling.due_dates import DueDateEstimator, due_date_warning_level, estimate_initial_due_date
from print_scheduler.scheduling.slot_finder import SlotFinder
from print_scheduler.scheduling.timing import calculate_stage_timing
from print_scheduler.scheduling.workflow import WorkflowScheduler

__all__ = [
    "WorkingCalendar",
    "CapacityKey",
    "CapacityTracker",
    "SchedulerSettings",
    "SchedulingConfig",
    "build_dependency_chain",
    "is_workflow_complete",
    "resolve_eligible_stages",
    "DueDateEstimator",
    "due_date_warning_level",
    "estimate_initial_due_date",
    "SlotFinder",
    "calculate_stage_timing",
    "WorkflowScheduler",
]
