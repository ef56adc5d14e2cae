"""Unit tests for timezone-aware date/time helpers"""
import pytest
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from habitforge.utils.datetime_helpers import (
    get_day_start_utc,
    get_zone,
    is_valid_timezone,
    local_date,
    now_utc,
    parse_completion_datetime,
    parse_month,
    parse_user_time,
    to_utc,
    today_in_timezone,
)


class TestZones:
    """Timezone resolution"""

    def test_get_zone_known(self):
        assert get_zone("Europe/Stockholm") == ZoneInfo("Europe/Stockholm")

    def test_get_zone_falls_back_to_utc(self):
        assert get_zone(None) == ZoneInfo("UTC")
        assert get_zone("") == ZoneInfo("UTC")
        assert get_zone("Mars/Olympus_Mons") == ZoneInfo("UTC")

    def test_is_valid_timezone(self):
        assert is_valid_timezone("America/New_York") is True
        assert is_valid_timezone("Not/A_Zone") is False


class TestConversions:
    """UTC conversion and local calendar days"""

    def test_now_utc_is_aware(self):
        assert now_utc().tzinfo is not None

    def test_to_utc_naive_assumed_utc(self):
        naive = datetime(2024, 1, 15, 10, 0)
        assert to_utc(naive) == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_to_utc_converts_aware(self):
        stockholm = datetime(2024, 1, 15, 10, 0, tzinfo=ZoneInfo("Europe/Stockholm"))
        assert to_utc(stockholm).hour == 9

    def test_local_date_crosses_midnight(self):
        """23:30 UTC is already the next day in Stockholm"""
        instant = datetime(2024, 1, 15, 23, 30, tzinfo=timezone.utc)

        assert local_date(instant, "UTC") == date(2024, 1, 15)
        assert local_date(instant, "Europe/Stockholm") == date(2024, 1, 16)
        assert local_date(instant, "America/New_York") == date(2024, 1, 15)

    def test_today_in_timezone_uses_given_now(self):
        now = datetime(2024, 6, 30, 23, 0, tzinfo=timezone.utc)
        assert today_in_timezone("Asia/Tokyo", now=now) == date(2024, 7, 1)

    def test_day_start_utc(self):
        start = get_day_start_utc(date(2024, 1, 15), "Europe/Stockholm")
        assert start == datetime(2024, 1, 14, 23, 0, tzinfo=timezone.utc)


class TestParsing:
    """Client-supplied dates, months and times"""

    def test_parse_completion_none_is_now(self):
        before = now_utc()
        parsed = parse_completion_datetime(None, "UTC")
        assert parsed >= before

    def test_parse_completion_bare_date_is_local_noon(self):
        parsed = parse_completion_datetime("2024-01-15", "America/New_York")
        assert parsed == datetime(2024, 1, 15, 17, 0, tzinfo=timezone.utc)
        assert local_date(parsed, "America/New_York") == date(2024, 1, 15)

    def test_parse_completion_naive_datetime_is_local(self):
        parsed = parse_completion_datetime("2024-01-15T08:00:00", "Europe/Stockholm")
        assert parsed == datetime(2024, 1, 15, 7, 0, tzinfo=timezone.utc)

    def test_parse_completion_with_offset(self):
        parsed = parse_completion_datetime("2024-01-15T08:00:00Z", "Europe/Stockholm")
        assert parsed == datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["2024-13-45", "yesterday", "2024-01-15T25:00"])
    def test_parse_completion_invalid(self, value):
        with pytest.raises(ValueError):
            parse_completion_datetime(value, "UTC")

    def test_parse_month(self):
        assert parse_month("2024-02") == (date(2024, 2, 1), date(2024, 3, 1))
        assert parse_month("2024-12") == (date(2024, 12, 1), date(2025, 1, 1))

    @pytest.mark.parametrize("value", ["2024/02", "2024-13", "february", ""])
    def test_parse_month_invalid(self, value):
        with pytest.raises(ValueError):
            parse_month(value)

    def test_parse_user_time(self):
        assert parse_user_time("07:30") == time(7, 30)

    @pytest.mark.parametrize("value", ["25:00", "7am", "12:60"])
    def test_parse_user_time_invalid(self, value):
        with pytest.raises(ValueError):
            parse_user_time(value)
