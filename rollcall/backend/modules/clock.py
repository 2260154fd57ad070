# rollcall/backend/modules/clock.py

from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo


class Clock:
    """
    Source of "now" in the organization's local time zone.

    Services receive a Clock instead of calling datetime.now() themselves, so
    tests can pin time by subclassing and overriding `now`.
    """

    def __init__(self, timezone_name: str = "UTC"):
        self.tz: tzinfo = ZoneInfo(timezone_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def localize(self, moment: datetime) -> datetime:
        """Expresses `moment` in local time; naive values are taken as local wall-clock time."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment.astimezone(self.tz)
