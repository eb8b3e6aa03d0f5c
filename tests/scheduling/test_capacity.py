"""
Tests for the per-stage, per-day capacity ledger.
"""
import pytest
from datetime import date
from unittest.mock import Mock

from print_scheduler.errors import CapacityExceededError, ValidationError
from print_scheduler.scheduling.capacity import CapacityKey, CapacityTracker


class TestCapacityTracker:

    def test_allocate_hands_out_increasing_queue_positions(self, monday):
        tracker = CapacityTracker()
        assert tracker.allocate(1, monday, 100) == 1
        assert tracker.allocate(1, monday, 100) == 2
        assert tracker.allocate(2, monday, 100) == 1
        assert tracker.allocated(1, monday) == 200
        assert tracker.remaining(1, monday) == 310

    def test_keys_are_independent_per_day(self, monday):
        tracker = CapacityTracker()
        tracker.allocate(1, monday, 510)
        assert tracker.can_fit(1, date(2025, 3, 4), 510)
        assert not tracker.can_fit(1, monday, 1)

    def test_allocate_past_capacity_raises(self, monday):
        tracker = CapacityTracker()
        tracker.allocate(1, monday, 400)
        with pytest.raises(CapacityExceededError) as excinfo:
            tracker.allocate(1, monday, 111)
        assert excinfo.value.available == 110
        assert tracker.allocated(1, monday) == 400

    def test_allocate_exactly_full_day(self, monday):
        tracker = CapacityTracker()
        tracker.allocate(1, monday, 510)
        assert tracker.remaining(1, monday) == 0

    @pytest.mark.parametrize("minutes", [0, -5])
    def test_non_positive_minutes_rejected(self, monday, minutes):
        with pytest.raises(ValidationError):
            CapacityTracker().allocate(1, monday, minutes)

    def test_queue_source_consulted_once_per_key(self, monday):
        source = Mock(return_value=4)
        tracker = CapacityTracker(queue_position_source=source)
        assert tracker.allocate(1, monday, 10) == 5
        assert tracker.allocate(1, monday, 10) == 6
        source.assert_called_once_with(1, monday)

    def test_checkpoint_and_restore(self, monday):
        tracker = CapacityTracker()
        tracker.allocate(1, monday, 100)
        snapshot = tracker.checkpoint()
        tracker.allocate(1, monday, 200)
        tracker.allocate(2, monday, 50)

        tracker.restore(snapshot)

        assert tracker.allocated(1, monday) == 100
        assert tracker.allocated(2, monday) == 0
        assert tracker.allocate(1, monday, 10) == 2

    def test_from_slots_seeds_minutes_and_positions(self, monday, slot_at):
        slots = [
            slot_at(1, monday, "08:00", 120, queue_position=1),
            slot_at(1, monday, "10:00", 60, queue_position=3),
        ]
        tracker = CapacityTracker.from_slots(slots)
        assert tracker.allocated(1, monday) == 180
        assert tracker.allocate(1, monday, 10) == 4
        assert len(tracker) == 1

    def test_register_over_capacity_is_recorded(self, monday, slot_at):
        """Persisted data is recorded as-is so the breach can be reported."""
        tracker = CapacityTracker(daily_capacity=100)
        tracker.register_slot(slot_at(1, monday, "08:00", 80))
        tracker.register_slot(slot_at(1, monday, "09:20", 80))
        assert tracker.allocated(1, monday) == 160
        assert tracker.remaining(1, monday) == -60

    def test_busy_intervals_sorted(self, calendar, monday, slot_at):
        tracker = CapacityTracker.from_slots([
            slot_at(1, monday, "13:00", 60),
            slot_at(1, monday, "08:30", 30),
        ])
        assert tracker.busy_intervals(1, monday, calendar.time_to_offset) == [(30, 60), (300, 360)]

    def test_utilisation_rows(self, monday):
        tracker = CapacityTracker()
        tracker.allocate(1, monday, 255)
        rows = tracker.utilisation(monday)
        assert rows == [{
            'stage_id': 1,
            'date': '2025-03-03',
            'allocated_minutes': 255,
            'available_minutes': 255,
            'utilisation': 0.5,
            'slot_count': 0,
        }]
        assert tracker.utilisation(date(2025, 3, 4)) == []

    def test_capacity_key_is_hashable_value(self, monday):
        assert CapacityKey(1, monday) == CapacityKey(1, monday)
        assert len({CapacityKey(1, monday), CapacityKey(1, monday)}) == 1
