# rollcall/backend/modules/occurrence_window.py

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

from ..models.db_models import SessionTemplate


def _utc(moment: datetime) -> datetime:
    # Aware datetimes sharing one tzinfo subtract and compare as wall-clock
    # values, which is off by the DST shift on transition days.
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True)
class OccurrenceWindow:
    """
    Concrete check-in window of one occurrence, as timezone-aware instants.
    `end` is exclusive: the window runs through the last second of the end minute.
    All arithmetic on the window goes through UTC.
    """
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return _utc(self.start) <= _utc(moment) < _utc(self.end)

    def has_started(self, moment: datetime) -> bool:
        return _utc(moment) >= _utc(self.start)

    def has_ended(self, moment: datetime) -> bool:
        return _utc(moment) >= _utc(self.end)

    def seconds_since_start(self, moment: datetime) -> float:
        """Real elapsed seconds from the start to `moment`; negative before the start."""
        return (_utc(moment) - _utc(self.start)).total_seconds()


def crosses_midnight(template: SessionTemplate) -> bool:
    return template.end_time < template.start_time


def compute_window(template: SessionTemplate, day: date, tz: tzinfo) -> OccurrenceWindow:
    """
    Combines the occurrence date with the template's wall-clock times.

    When end_time is earlier than start_time the occurrence ends on the next
    calendar date. Equal times give a one-minute window.
    """
    start = datetime.combine(day, template.start_time, tzinfo=tz)
    end_day = day + timedelta(days=1) if crosses_midnight(template) else day
    last_minute = datetime.combine(end_day, template.end_time, tzinfo=tz)
    end = (_utc(last_minute) + timedelta(minutes=1)).astimezone(tz)
    return OccurrenceWindow(start=start, end=end)
