# rollcall/backend/modules/recurrence.py

import calendar
from datetime import date, timedelta
from typing import Iterator

from ..models.db_models import Frequency, SessionTemplate, Weekday


def _cancelled_by_then(template: SessionTemplate, day: date) -> bool:
    if not template.is_cancelled:
        return False
    return template.cancelled_on is None or day >= template.cancelled_on


def _in_range(template: SessionTemplate, day: date) -> bool:
    # Templates without an end_date recur forever.
    if day < template.start_date:
        return False
    return template.end_date is None or day <= template.end_date


def _monthly_anchor(template: SessionTemplate, day: date) -> int:
    """Day-of-month the template falls on in `day`'s month, clamped to the month length."""
    last_day = calendar.monthrange(day.year, day.month)[1]
    return min(template.start_date.day, last_day)


def is_occurrence(template: SessionTemplate, day: date) -> bool:
    """
    Decides whether the calendar date `day` is an occurrence of `template`.

    Args:
        template: The session template to test.
        day: Calendar date in the organization's local time zone.

    Returns:
        True if the template's schedule produces an occurrence on that date.
        A cancelled template keeps only the occurrences dated before its
        cancellation.
    """
    if _cancelled_by_then(template, day):
        return False

    if template.frequency == Frequency.ONE_TIME:
        return day == template.start_date

    if not _in_range(template, day):
        return False

    if template.frequency == Frequency.DAILY:
        return True
    if template.frequency == Frequency.WEEKLY:
        return Weekday.of(day) in template.weekly_days
    if template.frequency == Frequency.MONTHLY:
        return day.day == _monthly_anchor(template, day)
    return False


def iter_occurrences(template: SessionTemplate, first: date, last: date) -> Iterator[date]:
    """Yields every occurrence date of `template` in the inclusive range [first, last]."""
    if last < first:
        return
    if template.frequency == Frequency.ONE_TIME:
        if first <= template.start_date <= last and is_occurrence(template, template.start_date):
            yield template.start_date
        return

    day = max(first, template.start_date)
    if template.end_date is not None:
        last = min(last, template.end_date)
    while day <= last:
        if is_occurrence(template, day):
            yield day
        day += timedelta(days=1)
