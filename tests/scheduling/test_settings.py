"""
Tests for scheduler settings and business constants.
"""
from datetime import date

import pytest

from print_scheduler.scheduling.config import SchedulerSettings, SchedulingConfig, parse_holidays


class TestSchedulerSettings:

    def test_defaults(self):
        settings = SchedulerSettings.from_mapping({})
        assert settings.utc_offset_hours == 2.0
        assert settings.horizon_days == 60
        assert settings.rollover_minutes == 60
        assert settings.retry_attempts == 3
        assert settings.holidays == ()

    def test_from_flask_style_config(self):
        settings = SchedulerSettings.from_mapping({
            "SCHEDULER_UTC_OFFSET_HOURS": "3",
            "SCHEDULER_HORIZON_DAYS": 20,
            "SCHEDULER_ROLLOVER_MINUTES": "",
            "SCHEDULER_PERSIST_RETRY_DELAY_SECONDS": "0",
            "SCHEDULER_HOLIDAYS": "2025-12-25, 2025-12-26",
        })
        assert settings.utc_offset_hours == 3.0
        assert settings.horizon_days == 20
        assert settings.rollover_minutes == 60
        assert settings.retry_delay_seconds == 0.0
        assert settings.holidays == (date(2025, 12, 25), date(2025, 12, 26))


class TestParseHolidays:

    def test_empty(self):
        assert parse_holidays("") == ()
        assert parse_holidays(None) == ()

    def test_iterable_of_dates_and_strings(self):
        assert parse_holidays([date(2025, 1, 1), "2025-04-18"]) == (date(2025, 1, 1), date(2025, 4, 18))

    def test_bad_date(self):
        with pytest.raises(ValueError):
            parse_holidays("25/12/2025")


class TestSchedulingConfig:

    @pytest.mark.parametrize("unit, factor", [
        ("per_hour", 60.0),
        ("Sheets_Per_Hour", 60.0),
        ("per_minute", 1.0),
        ("furlongs", 60.0),
        (None, 60.0),
    ])
    def test_speed_unit_factor(self, unit, factor):
        assert SchedulingConfig.get_speed_unit_factor(unit) == factor

    def test_shift_offsets(self):
        assert SchedulingConfig.shift_start_offset() == 480
        assert SchedulingConfig.shift_end_offset() == 1050
