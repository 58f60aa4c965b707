"""Unit tests for reward period identifiers."""
from datetime import date, datetime

import pytest

from airdrop.services.periods import (
    DAILY,
    SIX_HOUR,
    WEEKLY,
    current_period_id,
    next_period_id,
    parse_week_id,
    previous_period_id,
    week_id,
    week_start,
)


class TestWeeklyPeriods:
    def test_week_id_uses_iso_calendar(self):
        assert week_id(date(2025, 1, 1)) == "2025-W01"
        # ISO week 1 of 2026 starts in December 2025
        assert week_id(date(2025, 12, 29)) == "2026-W01"

    def test_week_start_is_monday(self):
        assert week_start("2025-W01") == date(2024, 12, 30)

    def test_previous_week_crosses_year(self):
        assert previous_period_id("2025-W01") == "2024-W52"
        assert previous_period_id("2021-W01") == "2020-W53"

    def test_next_week_crosses_year(self):
        assert next_period_id("2020-W53") == "2021-W01"

    def test_invalid_week_id(self):
        with pytest.raises(ValueError):
            parse_week_id("2025-1")
        with pytest.raises(ValueError):
            previous_period_id("not-a-period")


class TestDailyPeriods:
    def test_current_daily_period(self):
        assert current_period_id(DAILY, datetime(2025, 1, 28, 9, 0)) == "2025-D028"

    def test_previous_day_crosses_leap_year(self):
        assert previous_period_id("2025-D001") == "2024-D366"


class TestSixHourPeriods:
    def test_current_six_hour_period(self):
        assert current_period_id(SIX_HOUR, datetime(2025, 1, 28, 13, 0)) == "2025-D028-P2"

    def test_previous_and_next_wrap_days(self):
        assert previous_period_id("2025-D001-P0") == "2024-D366-P3"
        assert next_period_id("2024-D366-P3") == "2025-D001-P0"
        assert next_period_id("2025-D010-P1") == "2025-D010-P2"


def test_current_weekly_period():
    assert current_period_id(WEEKLY, datetime(2025, 1, 8, 0, 30)) == "2025-W02"


def test_unknown_cycle_mode():
    with pytest.raises(ValueError):
        current_period_id("monthly", datetime(2025, 1, 1))
