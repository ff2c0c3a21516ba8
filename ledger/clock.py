"""
Civil-time calendar helpers.

Every "is it today yet" and "has this date passed" decision is taken in one
fixed civil zone. Instants coming from outside are converted into that zone
before a day key or a date is derived from them.
"""

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

from .settings import settings


def get_zone(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or settings.timezone)


def to_zone(instant: datetime, tz: tzinfo) -> datetime:
    """Convert an instant into ``tz``. Naive values are read as ``tz`` local time."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=tz)
    return instant.astimezone(tz)


def parse_instant(value: Union[str, datetime], tz: tzinfo) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return to_zone(value, tz)


def day_key(instant: datetime) -> str:
    return instant.date().isoformat()


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.max, tzinfo=tz)


def first_day_of_next_month(instant: Union[date, datetime]) -> date:
    if instant.month == 12:
        return date(instant.year + 1, 1, 1)
    return date(instant.year, instant.month + 1, 1)


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


class Clock:
    """Supplies "now" in the configured civil zone."""

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz or get_zone()

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def localize(self, instant: Optional[Union[str, datetime]] = None) -> datetime:
        """Return ``instant`` in the civil zone, or now when it is missing."""
        if instant is None:
            return self.now()
        return parse_instant(instant, self.tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock(Clock):
    """Clock pinned to one instant; ``advance`` moves it forward."""

    def __init__(self, instant: datetime, tz: Optional[tzinfo] = None):
        super().__init__(tz)
        self._instant = to_zone(instant, self.tz)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = to_zone(instant, self.tz)

    def advance(self, **delta) -> datetime:
        self._instant = self._instant + timedelta(**delta)
        return self._instant
