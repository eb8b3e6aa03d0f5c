import logging
import logging.config
import structlog
from datetime import datetime, timezone
import uuid
from typing import Optional
import sys

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("apscheduler", "sqlalchemy.engine", "werkzeug")


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure structured logging for the scheduler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path for a rotating JSON log of scheduling runs
    """
    log_level = log_level.upper()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = ["console"]
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
            "json": {
                "()": "structlog.stdlib.ProcessorFormatter",
                "processor": structlog.processors.JSONRenderer()
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "plain",
                "stream": sys.stdout
            }
        },
        "root": {"level": log_level, "handlers": handlers},
        "loggers": {
            name: {"level": max(logging.WARNING, logging.getLevelName(log_level))}
            for name in QUIET_LOGGERS
        },
    }

    if log_file:
        log_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filename": log_file,
            "maxBytes": 10485760,
            "backupCount": 5
        }
        handlers.append("file")

    logging.config.dictConfig(log_config)

    logger = structlog.get_logger("print_scheduler")
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class SchedulingRunContext:
    """
    Context manager around one reschedule run.

    Binds the operation id (and job id for single-job runs) to every log line
    emitted inside the run, counts persistence attempts, and logs a summary of
    the outcome on exit.
    """

    def __init__(self, run_type: str, job_id: Optional[int] = None, operation_id: Optional[str] = None):
        self.run_type = run_type
        self.job_id = job_id
        self.operation_id = operation_id or str(uuid.uuid4())[:8]
        self.logger = get_logger("print_scheduler.runs")
        self.start_time = None
        self.attempts = 0
        self.summary = {}

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        return (datetime.now(timezone.utc) - self.start_time).total_seconds()

    def next_attempt(self) -> str:
        """Count a persistence attempt and return the run's operation id."""
        self.attempts += 1
        if self.attempts > 1:
            self.logger.info("Retrying scheduling run", attempt=self.attempts)
        return self.operation_id

    def finish(self, wrote_slots: int, updated_jsi: int, violations) -> None:
        self.summary = {
            "wrote_slots": wrote_slots,
            "updated_jsi": updated_jsi,
            "violation_count": len(violations),
        }

    def __enter__(self):
        self.start_time = datetime.now(timezone.utc)
        bound = {"operation_id": self.operation_id, "run_type": self.run_type}
        if self.job_id is not None:
            bound["job_id"] = self.job_id
        structlog.contextvars.bind_contextvars(**bound)
        self.logger.info("Scheduling run started", start_time=self.start_time.isoformat())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            status = "partial" if self.summary.get("violation_count") else "success"
            self.logger.info(
                "Scheduling run completed",
                duration_seconds=self.elapsed_seconds,
                attempts=self.attempts,
                status=status,
                **self.summary
            )
        else:
            self.logger.error(
                "Scheduling run failed",
                duration_seconds=self.elapsed_seconds,
                attempts=self.attempts,
                error_type=exc_type.__name__,
                error_message=str(exc_val)
            )

        structlog.contextvars.unbind_contextvars("operation_id", "run_type", "job_id")
        return False
