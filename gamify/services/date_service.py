"""
Clock and calendar-day service.
Every timestamp is normalized to naive UTC; a "day" is a UTC calendar day.
"""
from datetime import datetime, timezone, date
from typing import Callable, Optional


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DateService:
    """Service for date-related operations. Pass now_func to pin the clock."""

    def __init__(self, now_func: Optional[Callable[[], datetime]] = None):
        self._now_func = now_func or _utc_now

    def now(self) -> datetime:
        """Current time as naive UTC"""
        return self.to_utc_naive(self._now_func())

    def today(self) -> date:
        """Current UTC calendar day"""
        return self.now().date()

    @staticmethod
    def to_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
        """
        Normalize a datetime to naive UTC.

        Aware datetimes are converted to UTC; naive ones are assumed to be UTC already.
        """
        if dt is None:
            return None
        if dt.tzinfo is not None:
            return dt.astimezone(timezone.utc).replace(tzinfo=None)
        return dt

    @staticmethod
    def calendar_day(dt: datetime) -> date:
        """UTC calendar day of a timestamp"""
        return DateService.to_utc_naive(dt).date()

