"""
Tests for slot overlap detection and the schedule audit.
"""
import pytest
from datetime import date

from print_scheduler.errors import ConflictError
from print_scheduler.scheduling.conflicts import audit_slots, ensure_no_conflict, find_conflicts, slots_overlap


class TestOverlap:

    def test_overlapping_slots(self, monday, slot_at):
        assert slots_overlap(slot_at(1, monday, "08:00", 60), slot_at(1, monday, "08:30", 60))

    def test_touching_slots_do_not_overlap(self, monday, slot_at):
        assert not slots_overlap(slot_at(1, monday, "08:00", 60), slot_at(1, monday, "09:00", 60))

    def test_different_stages_never_overlap(self, monday, slot_at):
        assert not slots_overlap(slot_at(1, monday, "08:00", 60), slot_at(2, monday, "08:00", 60))

    def test_find_conflicts_ignores_itself(self, monday, slot_at):
        proposed = slot_at(1, monday, "08:00", 60)
        other = slot_at(1, monday, "08:15", 15)
        assert find_conflicts(proposed, [proposed, other]) == [other]

    def test_ensure_no_conflict_lists_every_clash(self, monday, slot_at):
        proposed = slot_at(1, monday, "08:00", 120, stage_instance_id=5)
        committed = [
            slot_at(1, monday, "08:30", 30, stage_instance_id=6),
            slot_at(1, monday, "09:30", 60, stage_instance_id=7),
            slot_at(1, monday, "11:00", 30, stage_instance_id=8),
        ]

        with pytest.raises(ConflictError) as excinfo:
            ensure_no_conflict(proposed, committed)

        assert len(excinfo.value.conflicts) == 2
        assert "jsi 5" in excinfo.value.proposed

    def test_ensure_no_conflict_passes(self, monday, slot_at):
        ensure_no_conflict(slot_at(1, monday, "08:00", 60), [slot_at(1, monday, "09:00", 60)])


class TestAudit:

    def test_clean_schedule(self, calendar, monday, slot_at):
        slots = [slot_at(1, monday, "08:00", 255), slot_at(1, monday, "12:15", 255)]
        assert audit_slots(slots, calendar, 510) == []

    def test_reports_weekend_slot(self, calendar, slot_at):
        violations = audit_slots([slot_at(1, date(2025, 3, 8), "09:00", 30)], calendar, 510)
        assert any("non-working day" in v for v in violations)

    def test_reports_after_hours_slot(self, calendar, monday, slot_at):
        violations = audit_slots([slot_at(1, monday, "17:00", 60)], calendar, 510)
        assert any("outside business hours" in v for v in violations)

    def test_reports_over_capacity(self, calendar, monday, slot_at):
        slots = [slot_at(1, monday, "08:00", 60), slot_at(1, monday, "09:00", 60)]
        violations = audit_slots(slots, calendar, 100)
        assert violations == ["stage 1: 120 minutes allocated on 2025-03-03 exceeds capacity of 100"]

    def test_reports_overlap(self, calendar, monday, slot_at):
        slots = [slot_at(1, monday, "08:00", 60), slot_at(1, monday, "08:30", 60)]
        violations = audit_slots(slots, calendar, 510)
        assert len(violations) == 1
        assert "overlaps" in violations[0]
