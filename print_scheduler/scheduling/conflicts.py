"""
Overlap detection for slots on the same stage.

Two slots conflict when they are on the same stage and
max(start_a, start_b) < min(end_a, end_b). Touching slots do not conflict.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from print_scheduler.errors import ConflictError
from print_scheduler.scheduling.records import SchedulingSlot


def slots_overlap(a: SchedulingSlot, b: SchedulingSlot) -> bool:
    if a.stage_id != b.stage_id:
        return False
    return max(a.start, b.start) < min(a.end, b.end)


def find_conflicts(proposed: SchedulingSlot, committed: Iterable[SchedulingSlot]) -> List[SchedulingSlot]:
    """Committed slots that overlap the proposed one, ignoring the slot itself."""
    return [
        slot for slot in committed
        if slot is not proposed and slots_overlap(proposed, slot)
    ]


def ensure_no_conflict(proposed: SchedulingSlot, committed: Iterable[SchedulingSlot]) -> None:
    """
    Raise ConflictError if the proposed slot overlaps any committed slot.

    Raises:
        ConflictError: Listing every conflicting slot.
    """
    conflicts = find_conflicts(proposed, committed)
    if conflicts:
        raise ConflictError(
            proposed.stage_id,
            proposed.label(),
            [slot.label() for slot in conflicts],
        )


def audit_slots(slots: Iterable[SchedulingSlot], calendar, daily_capacity: int) -> List[str]:
    """
    Check a set of slots for window, capacity and overlap breaches.

    Returns:
        list: Human-readable violation messages; empty when the set is clean
    """
    violations = []
    by_key: Dict[Tuple[int, object], List[SchedulingSlot]] = defaultdict(list)

    for slot in slots:
        local_start = calendar.to_local(slot.start)
        local_end = calendar.to_local(slot.end)
        if not calendar.is_working_day(local_start):
            violations.append(f"stage {slot.stage_id}: {slot.label()} is on a non-working day")
        if (local_start < calendar.day_start(local_start.date())
                or local_end > calendar.day_end(local_start.date())):
            violations.append(f"stage {slot.stage_id}: {slot.label()} is outside business hours")
        by_key[(slot.stage_id, local_start.date())].append(slot)

    for (stage_id, day), day_slots in sorted(by_key.items(), key=lambda kv: (kv[0][1], kv[0][0])):
        total = sum(s.duration_minutes for s in day_slots)
        if total > daily_capacity:
            violations.append(
                f"stage {stage_id}: {total} minutes allocated on {day.isoformat()} "
                f"exceeds capacity of {daily_capacity}"
            )
        ordered = sorted(day_slots, key=lambda s: s.start)
        for i, first in enumerate(ordered):
            for second in ordered[i + 1:]:
                if second.start >= first.end:
                    break
                violations.append(
                    f"stage {stage_id}: {first.label()} overlaps {second.label()}"
                )

    return violations
