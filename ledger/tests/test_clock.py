from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest

from ledger.clock import (
    Clock,
    FixedClock,
    add_days,
    day_key,
    end_of_day,
    first_day_of_next_month,
    parse_instant,
    start_of_day,
    to_zone,
)


JKT = ZoneInfo("Asia/Jakarta")
UTC = ZoneInfo("UTC")


class TestCalendar:

    def test_day_key_in_civil_zone(self):
        instant = to_zone(datetime(2024, 5, 10, 18, 0, tzinfo=UTC), JKT)
        assert day_key(instant) == "2024-05-11"

    def test_naive_instant_is_civil_local_time(self):
        instant = to_zone(datetime(2024, 5, 10, 23, 30), JKT)
        assert instant.tzinfo == JKT
        assert day_key(instant) == "2024-05-10"

    def test_parse_iso_string_with_z_suffix(self):
        instant = parse_instant("2024-05-31T17:00:00Z", JKT)
        assert instant.date() == date(2024, 6, 1)
        assert instant.hour == 0

    def test_day_boundaries(self):
        day = date(2024, 6, 9)
        assert start_of_day(day, JKT) == datetime(2024, 6, 9, 0, 0, tzinfo=JKT)
        assert end_of_day(day, JKT) == datetime.combine(day, time.max, tzinfo=JKT)
        assert end_of_day(day, JKT) < start_of_day(add_days(day, 1), JKT)

    @pytest.mark.parametrize(
        "instant, expected",
        [
            (datetime(2024, 5, 10, 10, 0, tzinfo=JKT), date(2024, 6, 1)),
            (datetime(2024, 1, 31, 23, 59, tzinfo=JKT), date(2024, 2, 1)),
            (datetime(2024, 12, 15, 8, 0, tzinfo=JKT), date(2025, 1, 1)),
        ],
    )
    def test_first_day_of_next_month(self, instant, expected):
        assert first_day_of_next_month(instant) == expected

    def test_add_days_crosses_month(self):
        assert add_days(date(2024, 5, 10), 30) == date(2024, 6, 9)


class TestClocks:

    def test_clock_now_is_in_zone(self):
        clock = Clock(JKT)
        assert clock.now().tzinfo == JKT

    def test_localize_defaults_to_now(self):
        clock = FixedClock(datetime(2024, 5, 10, 10, 0, tzinfo=JKT), tz=JKT)
        assert clock.localize(None) == datetime(2024, 5, 10, 10, 0, tzinfo=JKT)
        assert clock.today() == date(2024, 5, 10)

    def test_fixed_clock_converts_foreign_zone(self):
        clock = FixedClock(datetime(2024, 5, 10, 18, 0, tzinfo=UTC), tz=JKT)
        assert clock.today() == date(2024, 5, 11)

    def test_fixed_clock_advance(self):
        clock = FixedClock(datetime(2024, 5, 31, 23, 0, tzinfo=JKT), tz=JKT)
        clock.advance(hours=2)
        assert clock.today() == date(2024, 6, 1)
