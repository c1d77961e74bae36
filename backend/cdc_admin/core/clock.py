"""
Clock collaborator.

All "now" and "today" reads in the services go through a Clock so day
boundaries are computed in one place (local midnight in settings.TIMEZONE)
and tests can pin time.
"""
from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from cdc_admin.core.config import settings


class Clock:
    """Wall clock in the institute's local timezone; returns naive local datetimes"""

    def __init__(self, timezone: Optional[str] = None):
        self.tz = ZoneInfo(timezone or settings.TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(self.tz).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()

    def timestamps(self) -> dict:
        """created_at/updated_at for a new row"""
        now = self.now()
        return {"created_at": now, "updated_at": now}

    def to_local_day(self, value: Union[date, datetime, str]) -> date:
        """Truncate an instant (or ISO string) to the local calendar day"""
        if isinstance(value, str):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(self.tz)
            return value.date()
        return value

    def to_local_datetime(self, value: datetime) -> datetime:
        """Normalize an aware datetime to naive local time"""
        if value.tzinfo is not None:
            return value.astimezone(self.tz).replace(tzinfo=None)
        return value


class FixedClock(Clock):
    """Clock pinned to a given instant; advance() moves it forward"""

    def __init__(self, instant: datetime, timezone: Optional[str] = None):
        super().__init__(timezone)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def advance(self, **delta) -> None:
        self._instant = self._instant + timedelta(**delta)


_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency returning the process clock"""
    return _clock
