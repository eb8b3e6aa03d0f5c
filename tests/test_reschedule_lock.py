"""
Tests for the single-flight reschedule lock.
"""
import threading

import pytest

from print_scheduler.errors import RescheduleInProgressError
from print_scheduler.reschedule_lock import RescheduleLockManager


class TestRescheduleLockManager:

    def test_acquire_and_release(self, lock_manager):
        assert not lock_manager.is_locked()
        with lock_manager.acquire("reschedule_all"):
            assert lock_manager.is_locked()
            assert lock_manager.get_current_operation() == "reschedule_all"
        assert not lock_manager.is_locked()
        assert lock_manager.get_current_operation() is None

    def test_reentrant_for_same_thread(self, lock_manager):
        with lock_manager.acquire("reschedule_all"):
            with lock_manager.acquire("reschedule_job"):
                assert lock_manager.get_current_operation() == "reschedule_all"
            assert lock_manager.is_locked()
        assert not lock_manager.is_locked()

    def test_other_thread_fails_fast(self, lock_manager):
        errors = []

        def contender():
            try:
                with lock_manager.acquire("nightly"):
                    pass
            except RescheduleInProgressError as e:
                errors.append(e)

        with lock_manager.acquire("reschedule_all"):
            thread = threading.Thread(target=contender)
            thread.start()
            thread.join(timeout=5)

        assert len(errors) == 1
        assert errors[0].current == "reschedule_all"
        assert errors[0].requested == "nightly"

    def test_released_after_exception(self, lock_manager):
        with pytest.raises(RuntimeError):
            with lock_manager.acquire("reschedule_all"):
                raise RuntimeError("boom")
        assert not lock_manager.is_locked()

    def test_status(self, lock_manager):
        with lock_manager.acquire("reschedule_job"):
            status = lock_manager.get_status()
        assert status["is_locked"] is True
        assert status["current_operation"] == "reschedule_job"
        assert status["timeout_seconds"] == 60
