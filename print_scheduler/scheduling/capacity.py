"""
Per-stage, per-day capacity ledger for one scheduling run.

A single tracker is shared by every job in a batch run so capacity consumed
by an earlier job is visible to later ones.
"""
import copy
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from print_scheduler.errors import CapacityExceededError, ValidationError
from print_scheduler.logging_config import get_logger
from print_scheduler.scheduling.config import SchedulingConfig
from print_scheduler.scheduling.records import SchedulingSlot

logger = get_logger(__name__)

QueuePositionSource = Callable[[int, date], int]


@dataclass(frozen=True)
class CapacityKey:
    stage_id: int
    day: date


@dataclass
class CapacityEntry:
    allocated_minutes: int = 0
    max_queue_position: int = 0
    slots: List[SchedulingSlot] = field(default_factory=list)


class CapacityTracker:
    """
    Ledger of allocated minutes and queue positions keyed by (stage, day).

    Args:
        daily_capacity: Minutes available per stage per day.
        queue_position_source: Optional callable returning the highest queue
            position already persisted for a (stage, day). Consulted once,
            when the key is first touched.
    """

    def __init__(
        self,
        daily_capacity: int = SchedulingConfig.DAILY_CAPACITY_MINUTES,
        queue_position_source: Optional[QueuePositionSource] = None,
    ):
        self.daily_capacity = daily_capacity
        self._queue_position_source = queue_position_source
        self._entries: Dict[CapacityKey, CapacityEntry] = {}

    def __len__(self):
        return len(self._entries)

    def _entry(self, stage_id: int, day: date) -> CapacityEntry:
        key = CapacityKey(stage_id, day)
        entry = self._entries.get(key)
        if entry is None:
            entry = CapacityEntry()
            if self._queue_position_source is not None:
                entry.max_queue_position = max(0, self._queue_position_source(stage_id, day) or 0)
            self._entries[key] = entry
        return entry

    def allocated(self, stage_id: int, day: date) -> int:
        entry = self._entries.get(CapacityKey(stage_id, day))
        return entry.allocated_minutes if entry else 0

    def remaining(self, stage_id: int, day: date) -> int:
        return self.daily_capacity - self.allocated(stage_id, day)

    def can_fit(self, stage_id: int, day: date, minutes: int) -> bool:
        return self.allocated(stage_id, day) + minutes <= self.daily_capacity

    def slots(self, stage_id: int, day: date) -> List[SchedulingSlot]:
        entry = self._entries.get(CapacityKey(stage_id, day))
        return list(entry.slots) if entry else []

    def busy_intervals(self, stage_id: int, day: date, to_offset: Callable) -> List[Tuple[int, int]]:
        """Committed slots of the stage on the day as sorted (start, end) offsets."""
        return sorted(
            (to_offset(slot.start), to_offset(slot.end))
            for slot in self.slots(stage_id, day)
        )

    def allocate(
        self,
        stage_id: int,
        day: date,
        minutes: int,
        slot: Optional[SchedulingSlot] = None,
    ) -> int:
        """
        Record minutes against a stage's day and hand out the next queue position.

        Returns:
            int: The queue position for the allocation (1-based, strictly increasing)

        Raises:
            ValidationError: If minutes is not positive.
            CapacityExceededError: If the day would exceed daily capacity.
        """
        if minutes <= 0:
            raise ValidationError("minutes", minutes, "must be positive")

        entry = self._entry(stage_id, day)
        if entry.allocated_minutes + minutes > self.daily_capacity:
            raise CapacityExceededError(
                stage_id, day, minutes, self.daily_capacity - entry.allocated_minutes
            )

        entry.allocated_minutes += minutes
        entry.max_queue_position += 1
        if slot is not None:
            slot.queue_position = entry.max_queue_position
            entry.slots.append(slot)
        return entry.max_queue_position

    def register_slot(self, slot: SchedulingSlot) -> None:
        """
        Seed the ledger with a slot that is already persisted.

        Persisted data is recorded as-is, even when it breaks capacity, so
        the run can report the breach instead of hiding it.
        """
        entry = self._entry(slot.stage_id, slot.day)
        entry.allocated_minutes += slot.duration_minutes
        entry.slots.append(slot)
        if slot.queue_position is not None:
            entry.max_queue_position = max(entry.max_queue_position, slot.queue_position)
        if entry.allocated_minutes > self.daily_capacity:
            logger.warning(
                "Persisted slots exceed daily capacity",
                stage_id=slot.stage_id,
                day=slot.day.isoformat(),
                allocated_minutes=entry.allocated_minutes,
            )

    @classmethod
    def from_slots(
        cls,
        slots: Iterable[SchedulingSlot],
        daily_capacity: int = SchedulingConfig.DAILY_CAPACITY_MINUTES,
        queue_position_source: Optional[QueuePositionSource] = None,
    ) -> "CapacityTracker":
        tracker = cls(daily_capacity=daily_capacity, queue_position_source=queue_position_source)
        for slot in slots:
            tracker.register_slot(slot)
        return tracker

    def checkpoint(self) -> Dict[CapacityKey, CapacityEntry]:
        """Snapshot of the ledger for rolling back a job that failed part-way."""
        return copy.deepcopy(self._entries)

    def restore(self, snapshot: Dict[CapacityKey, CapacityEntry]) -> None:
        self._entries = copy.deepcopy(snapshot)

    def reset(self) -> None:
        self._entries.clear()

    def all_slots(self) -> List[SchedulingSlot]:
        return [slot for entry in self._entries.values() for slot in entry.slots]

    def utilisation(self, day: Optional[date] = None) -> List[dict]:
        """Allocated vs available minutes per (stage, day), optionally for one day."""
        rows = []
        for key, entry in sorted(self._entries.items(), key=lambda kv: (kv[0].day, kv[0].stage_id)):
            if day is not None and key.day != day:
                continue
            rows.append({
                'stage_id': key.stage_id,
                'date': key.day.isoformat(),
                'allocated_minutes': entry.allocated_minutes,
                'available_minutes': max(0, self.daily_capacity - entry.allocated_minutes),
                'utilisation': round(entry.allocated_minutes / self.daily_capacity, 3),
                'slot_count': len(entry.slots),
            })
        return rows
