"""
Happiness streak rules.

Streak days are logical calendar days in the configured time zone, stored and
compared as dates (timestamp subtraction breaks across DST changes).
"""
from datetime import date

MOOD_HAPPY = "happy"
MOODS = ("happy", "neutral", "sad", "worried")

# consecutive happy days -> bonus XP
STREAK_MILESTONES: dict[int, int] = {
    1: 10,
    3: 20,
    7: 50,
    14: 100,
    30: 200,
}
WEEKLY_BONUS_XP = 25
DAILY_HAPPY_XP = 5


def streak_bonus(consecutive_happy_days: int) -> int:
    """
    XP for reaching consecutive_happy_days.

    Milestones first, then any other multiple of 7, otherwise the daily bonus.
    """
    if consecutive_happy_days <= 0:
        return 0
    if consecutive_happy_days in STREAK_MILESTONES:
        return STREAK_MILESTONES[consecutive_happy_days]
    if consecutive_happy_days % 7 == 0:
        return WEEKLY_BONUS_XP
    return DAILY_HAPPY_XP


def is_milestone(consecutive_happy_days: int) -> bool:
    return consecutive_happy_days in STREAK_MILESTONES


def days_since(last_day: date | None, today: date) -> int | None:
    """Whole logical days between last_day and today; None if never checked."""
    if last_day is None:
        return None
    return (today - last_day).days
