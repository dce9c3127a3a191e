"""
Tests for happiness streak bonus schedule and logical-day helpers
"""
from datetime import date, datetime, timezone

import pytest

from capling.domain.streak import days_since, is_milestone, streak_bonus
from capling.utils.dates import logical_day, week_start


class TestStreakBonus:
    @pytest.mark.parametrize("days,xp", [
        (1, 10),
        (2, 5),
        (3, 20),
        (7, 50),
        (14, 100),
        (21, 25),
        (28, 25),
        (30, 200),
        (35, 25),
        (31, 5),
    ])
    def test_schedule(self, days, xp):
        assert streak_bonus(days) == xp

    def test_no_streak_no_bonus(self):
        assert streak_bonus(0) == 0

    def test_milestones(self):
        assert is_milestone(7)
        assert not is_milestone(21)


class TestLogicalDays:
    def test_days_since(self):
        assert days_since(None, date(2026, 3, 2)) is None
        assert days_since(date(2026, 3, 1), date(2026, 3, 1)) == 0
        assert days_since(date(2026, 3, 1), date(2026, 3, 2)) == 1

    def test_logical_day_uses_time_zone(self):
        moment = datetime(2026, 3, 1, 22, 30, tzinfo=timezone.utc)
        assert logical_day(moment, "UTC") == date(2026, 3, 1)
        assert logical_day(moment, "Europe/Moscow") == date(2026, 3, 2)
        assert logical_day(moment, "America/New_York") == date(2026, 3, 1)

    def test_naive_treated_as_utc(self):
        assert logical_day(datetime(2026, 3, 1, 23, 0), "Asia/Tokyo") == date(2026, 3, 2)

    def test_dst_change_is_one_day(self):
        # US DST starts 2026-03-08
        before = logical_day(datetime(2026, 3, 8, 4, 30, tzinfo=timezone.utc), "America/New_York")
        after = logical_day(datetime(2026, 3, 9, 3, 30, tzinfo=timezone.utc), "America/New_York")
        assert days_since(before, after) == 1

    @pytest.mark.parametrize("today,start", [
        (date(2026, 3, 1), date(2026, 3, 1)),   # Sunday
        (date(2026, 3, 4), date(2026, 3, 1)),   # Wednesday
        (date(2026, 3, 7), date(2026, 3, 1)),   # Saturday
        (date(2026, 3, 8), date(2026, 3, 8)),
    ])
    def test_week_starts_on_sunday(self, today, start):
        assert week_start(today) == start
