"""Tests for the cron expression engine."""

from datetime import datetime, timedelta

import pytest

from goldagent.scheduler import cron
from goldagent.scheduler.errors import ParseError


class TestWildcards:
    """An all-wildcard expression matches everything."""

    def test_five_field_wildcard_matches_every_minute(self):
        start = datetime(2024, 2, 27, 22, 0)
        for offset in range(0, 60 * 24 * 3, 37):
            t = start + timedelta(minutes=offset)
            assert cron.evaluate("* * * * *", t)

    def test_six_field_wildcard_matches_every_second(self):
        start = datetime(2024, 12, 31, 23, 59, 0)
        for offset in range(0, 180):
            assert cron.evaluate("* * * * * *", start + timedelta(seconds=offset))

    def test_five_field_fires_at_second_zero_only(self):
        assert cron.evaluate("* * * * *", datetime(2024, 1, 1, 12, 0, 0))
        assert not cron.evaluate("* * * * *", datetime(2024, 1, 1, 12, 0, 30))


class TestFieldForms:
    """Lists, ranges and steps."""

    def test_list_matches_exactly_its_values(self):
        for minute in range(60):
            t = datetime(2024, 5, 5, 10, minute)
            assert cron.evaluate("1,3,5 * * * *", t) == (minute in {1, 3, 5})

    def test_list_in_hour_field(self):
        for hour in range(24):
            t = datetime(2024, 5, 5, hour, 0)
            assert cron.evaluate("0 1,3,5 * * *", t) == (hour in {1, 3, 5})

    def test_range_is_inclusive(self):
        schedule = cron.parse("10-12 * * * *")
        assert schedule.minutes == frozenset({10, 11, 12})

    def test_star_step(self):
        schedule = cron.parse("*/15 * * * *")
        assert schedule.minutes == frozenset({0, 15, 30, 45})

    def test_range_step_starts_at_range_base(self):
        schedule = cron.parse("0 1-10/3 * * *")
        assert schedule.hours == frozenset({1, 4, 7, 10})

    def test_single_base_step_runs_to_field_max(self):
        schedule = cron.parse("50/5 * * * *")
        assert schedule.minutes == frozenset({50, 55})

    def test_mixed_list(self):
        schedule = cron.parse("0 0 1,15,20-22 * *")
        assert schedule.days_of_month == frozenset({1, 15, 20, 21, 22})

    def test_day_of_week_seven_is_sunday(self):
        schedule = cron.parse("0 0 * * 7")
        assert schedule.days_of_week == frozenset({0})
        assert cron.evaluate("0 0 * * 7", datetime(2024, 3, 3))  # Sunday

    def test_six_field_seconds(self):
        schedule = cron.parse("*/10 * * * * *")
        assert schedule.has_seconds
        assert schedule.needs_second_resolution
        assert cron.evaluate("*/10 * * * * *", datetime(2024, 1, 1, 0, 0, 20))
        assert not cron.evaluate("*/10 * * * * *", datetime(2024, 1, 1, 0, 0, 21))

    def test_six_field_at_second_zero_needs_no_second_resolution(self):
        assert not cron.parse("0 */5 * * * *").needs_second_resolution
        assert not cron.parse("*/5 * * * *").needs_second_resolution


class TestDayTieBreak:
    """Both day fields restricted: either may match."""

    def test_first_of_month_or_monday(self):
        # 2024-03-01 is a Friday, 2024-03-04 a Monday
        assert cron.evaluate("0 0 1 * 1", datetime(2024, 3, 1, 0, 0))
        assert cron.evaluate("0 0 1 * 1", datetime(2024, 3, 4, 0, 0))

    def test_neither_day_field_matching(self):
        # Tuesday the 5th
        assert not cron.evaluate("0 0 1 * 1", datetime(2024, 3, 5, 0, 0))

    def test_only_day_of_month_restricted(self):
        assert cron.evaluate("0 0 1 * *", datetime(2024, 3, 1))
        assert not cron.evaluate("0 0 1 * *", datetime(2024, 3, 4))

    def test_only_day_of_week_restricted(self):
        assert cron.evaluate("0 0 * * 1", datetime(2024, 3, 4))
        assert not cron.evaluate("0 0 * * 1", datetime(2024, 3, 1))

    def test_star_step_counts_as_unrestricted(self):
        # day-of-month */2 is treated as a wildcard, so only Monday applies
        assert not cron.evaluate("0 0 */2 * 1", datetime(2024, 3, 1))
        assert cron.evaluate("0 0 */2 * 1", datetime(2024, 3, 4))


class TestShortcuts:
    """daily@ and weekdays@ forms."""

    def test_daily(self):
        assert cron.normalize("daily@13:05") == "0 5 13 * * *"
        assert cron.evaluate("daily@13:05", datetime(2024, 6, 1, 13, 5))
        assert not cron.evaluate("daily@13:05", datetime(2024, 6, 1, 13, 6))

    def test_weekdays(self):
        assert cron.normalize("weekdays@09:30") == "0 30 9 * * 1-5"
        assert cron.evaluate("weekdays@09:30", datetime(2024, 6, 3, 9, 30))  # Monday
        assert not cron.evaluate("weekdays@09:30", datetime(2024, 6, 1, 9, 30))  # Saturday

    def test_parsed_schedule_keeps_original_text(self):
        assert cron.parse("daily@07:00").expr == "daily@07:00"

    @pytest.mark.parametrize("expr", ["daily@24:00", "daily@12:60", "weekdays@99:99"])
    def test_invalid_shortcut_time(self, expr):
        with pytest.raises(ParseError):
            cron.parse(expr)


class TestValidation:
    """Rejected expressions report the offending field."""

    @pytest.mark.parametrize(
        "expr, index",
        [
            ("60 * * * *", 0),
            ("* 24 * * *", 1),
            ("* * 0 * *", 2),
            ("* * * 13 *", 3),
            ("* * * * 8", 4),
            ("61 * * * * *", 0),
            ("* abc * * *", 1),
            ("* * * * mon", 4),
            ("*/0 * * * *", 0),
            ("5-1 * * * *", 0),
            ("1,,2 * * * *", 0),
        ],
    )
    def test_field_index_reported(self, expr, index):
        with pytest.raises(ParseError) as exc_info:
            cron.parse(expr)
        assert exc_info.value.field_index == index
        assert f"field {index}" in str(exc_info.value)

    @pytest.mark.parametrize("expr", ["* * * *", "* * * * * * *", "", "   "])
    def test_wrong_field_count(self, expr):
        with pytest.raises(ParseError) as exc_info:
            cron.validate(expr)
        assert exc_info.value.field_index is None

    def test_non_ascii_digits_rejected(self):
        with pytest.raises(ParseError):
            cron.parse("١ * * * *")

    def test_validate_accepts_valid(self):
        cron.validate("0 9 * * 1-5")
        cron.validate("*/30 * * * * *")
