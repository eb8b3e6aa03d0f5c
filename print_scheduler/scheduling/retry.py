"""
Bounded retry with a fixed backoff for persistence writes.
"""
import time
from typing import Callable, Tuple, Type, TypeVar

from print_scheduler.errors import PersistenceError, ValidationError
from print_scheduler.logging_config import get_logger
from print_scheduler.scheduling.config import SchedulingConfig

logger = get_logger(__name__)

T = TypeVar("T")


def call_with_retry(
    func: Callable[[], T],
    attempts: int = SchedulingConfig.DEFAULT_RETRY_ATTEMPTS,
    delay_seconds: float = SchedulingConfig.DEFAULT_RETRY_DELAY_SECONDS,
    retry_on: Tuple[Type[BaseException], ...] = (PersistenceError,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call func until it succeeds or attempts run out.

    Only exceptions listed in retry_on are retried; anything else propagates
    at once. After the last attempt the last error is re-raised.
    """
    if attempts < 1:
        raise ValidationError("attempts", attempts, "must be at least 1")

    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as e:
            if attempt >= attempts:
                logger.error(
                    "Giving up after retries",
                    attempts=attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
            logger.warning(
                "Attempt failed, retrying",
                attempt=attempt,
                attempts=attempts,
                delay_seconds=delay_seconds,
                error=str(e),
            )
            sleep(delay_seconds)
