import threading
import logging
from contextlib import contextmanager
from typing import Optional
from datetime import datetime

from print_scheduler.errors import RescheduleInProgressError

logger = logging.getLogger(__name__)


class RescheduleLockManager:
    """
    Single-flight lock for reschedule runs.

    Two reschedule runs at once would both read the same free capacity and
    double-book it, so only one run may hold the lock. A second caller from
    another thread fails fast with RescheduleInProgressError instead of waiting.
    The holding thread may re-enter (a full run scheduling one job).
    """

    def __init__(self, timeout_seconds: int = 60):
        self._lock = threading.RLock()
        self._is_running = False
        self._current_operation = None
        self._holder_thread_id = None
        self._depth = 0
        self._acquired_at: Optional[datetime] = None
        self._timeout_seconds = timeout_seconds

    def is_locked(self) -> bool:
        """Check if a reschedule is currently running"""
        with self._lock:
            return self._is_running

    def get_current_operation(self) -> Optional[str]:
        """Get the name of the operation holding the lock"""
        with self._lock:
            return self._current_operation if self._is_running else None

    @contextmanager
    def acquire(self, operation_name: str, timeout_seconds: Optional[int] = None):
        """
        Context manager to acquire the reschedule lock

        Args:
            operation_name: Name of the operation acquiring the lock

        Raises:
            RescheduleInProgressError: If another thread holds the lock
        """
        acquired = False
        timeout = timeout_seconds or self._timeout_seconds
        try:
            if not self._lock.acquire(timeout=timeout):
                raise RescheduleInProgressError(operation_name, self._current_operation)
            try:
                current_thread_id = threading.get_ident()
                if self._is_running and self._holder_thread_id != current_thread_id:
                    current_op = self._current_operation
                    logger.warning(
                        f"Reschedule lock already held by '{current_op}'. "
                        f"Cannot acquire for '{operation_name}'"
                    )
                    raise RescheduleInProgressError(operation_name, current_op)

                if self._is_running:
                    logger.info(f"Re-entrant reschedule lock for operation: {operation_name}")
                else:
                    self._is_running = True
                    self._current_operation = operation_name
                    self._holder_thread_id = current_thread_id
                    self._acquired_at = datetime.now()
                    logger.info(f"Reschedule lock acquired for operation: {operation_name}")
                self._depth += 1
                acquired = True
            finally:
                self._lock.release()

            yield

        finally:
            if acquired:
                with self._lock:
                    self._depth -= 1
                    if self._depth == 0:
                        self._is_running = False
                        self._current_operation = None
                        self._holder_thread_id = None
                        self._acquired_at = None
                        logger.info(f"Reschedule lock released for operation: {operation_name}")

    def get_status(self) -> dict:
        """Get current status of the lock manager"""
        with self._lock:
            return {
                "is_locked": self._is_running,
                "current_operation": self._current_operation if self._is_running else None,
                "timestamp": datetime.now().isoformat(),
                "held_for_seconds": (datetime.now() - self._acquired_at).total_seconds() if self._acquired_at else 0,
                "timeout_seconds": self._timeout_seconds,
            }


# Global instance - create once and reuse
reschedule_lock_manager = RescheduleLockManager()
