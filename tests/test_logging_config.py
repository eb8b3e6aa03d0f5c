"""
Tests for logging setup and the scheduling run context.
"""
import logging

import pytest
import structlog

from print_scheduler.logging_config import QUIET_LOGGERS, SchedulingRunContext, configure_logging


class TestConfigureLogging:

    def test_lowercase_level_accepted(self):
        configure_logging("debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_third_party_loggers_quieted(self):
        configure_logging("INFO")
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


class TestSchedulingRunContext:

    def test_binds_run_fields_inside_the_run(self):
        with SchedulingRunContext("reschedule_job", job_id=7, operation_id="op1"):
            bound = structlog.contextvars.get_contextvars()
            assert bound == {"operation_id": "op1", "run_type": "reschedule_job", "job_id": 7}
        assert "operation_id" not in structlog.contextvars.get_contextvars()

    def test_counts_attempts(self):
        context = SchedulingRunContext("reschedule_all", operation_id="op2")
        with context:
            assert context.next_attempt() == "op2"
            assert context.next_attempt() == "op2"
            context.finish(wrote_slots=3, updated_jsi=4, violations=["job 2: no slot"])
        assert context.attempts == 2
        assert context.summary == {"wrote_slots": 3, "updated_jsi": 4, "violation_count": 1}

    def test_exceptions_propagate(self):
        with pytest.raises(RuntimeError):
            with SchedulingRunContext("nightly"):
                raise RuntimeError("boom")
        assert structlog.contextvars.get_contextvars() == {}
