"""
Logical calendar helpers.

All day/week boundaries are computed in the configured time zone and then
handled as plain dates.
"""
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def logical_day(moment: datetime, tz_name: str) -> date:
    """
    Calendar day of moment in tz_name (naive datetimes are treated as UTC)

    Example:
        >>> logical_day(datetime(2026, 3, 1, 22, 30, tzinfo=timezone.utc), "Europe/Moscow")
        datetime.date(2026, 3, 2)
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name)).date()


def week_start(today: date) -> date:
    """Most recent Sunday on or before today."""
    # date.weekday(): Monday=0 .. Sunday=6
    return today - timedelta(days=(today.weekday() + 1) % 7)
