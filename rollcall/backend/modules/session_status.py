# rollcall/backend/modules/session_status.py

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from ..models.db_models import Frequency, SessionTemplate
from .occurrence_window import OccurrenceWindow, compute_window, crosses_midnight
from .recurrence import is_occurrence

DEFAULT_LOOKAHEAD_MINUTES = 120


class StatusKind(str, Enum):
    LIVE = "Live"
    UPCOMING_SOON = "UpcomingSoon"
    FINISHED = "Finished"
    NOT_TODAY = "NotToday"


@dataclass(frozen=True)
class SessionStatus:
    kind: StatusKind
    occurrence_date: Optional[date] = None
    window: Optional[OccurrenceWindow] = None
    minutes_until_start: Optional[int] = None

    @property
    def is_scannable(self) -> bool:
        return self.kind in (StatusKind.LIVE, StatusKind.UPCOMING_SOON)


NOT_TODAY = SessionStatus(kind=StatusKind.NOT_TODAY)


def _local(now: datetime, tz: tzinfo) -> datetime:
    return now.replace(tzinfo=tz) if now.tzinfo is None else now.astimezone(tz)


def _classify_occurrence(template: SessionTemplate, day: date, now: datetime,
                         tz: tzinfo, lookahead_minutes: int) -> SessionStatus:
    if not is_occurrence(template, day):
        return NOT_TODAY

    window = compute_window(template, day, tz)
    if window.contains(now):
        return SessionStatus(StatusKind.LIVE, day, window)
    if not window.has_started(now):
        gap_minutes = math.ceil(-window.seconds_since_start(now) / 60)
        if gap_minutes <= lookahead_minutes:
            return SessionStatus(StatusKind.UPCOMING_SOON, day, window, gap_minutes)
        return NOT_TODAY
    return SessionStatus(StatusKind.FINISHED, day, window)


def classify(template: SessionTemplate, now: datetime, tz: tzinfo,
             lookahead_minutes: int = DEFAULT_LOOKAHEAD_MINUTES) -> SessionStatus:
    """
    Classifies a template relative to `now`. Total: every input maps to exactly
    one of Live, UpcomingSoon, Finished or NotToday; it never raises.

    OneTime templates are judged on their fixed start date, recurring ones on
    the local date of `now`. A recurring window that crosses midnight is also
    checked against yesterday's occurrence, which may still be running.
    """
    now = _local(now, tz)

    if template.frequency == Frequency.ONE_TIME:
        return _classify_occurrence(template, template.start_date, now, tz, lookahead_minutes)

    today = now.date()
    if crosses_midnight(template):
        yesterday = _classify_occurrence(template, today - timedelta(days=1), now, tz, lookahead_minutes)
        if yesterday.kind == StatusKind.LIVE:
            return yesterday

    return _classify_occurrence(template, today, now, tz, lookahead_minutes)


def select_scannable(templates: Iterable[SessionTemplate], user_id: str, now: datetime, tz: tzinfo,
                     lookahead_minutes: int = DEFAULT_LOOKAHEAD_MINUTES) -> List[Tuple[SessionTemplate, SessionStatus]]:
    """
    Returns the (template, status) pairs a user may pick from: non-cancelled,
    assigned to the user, and Live or UpcomingSoon. Live sessions come first,
    then by start instant.
    """
    selectable = []
    for template in templates:
        if template.is_cancelled or user_id not in template.assigned_users:
            continue
        status = classify(template, now, tz, lookahead_minutes)
        if status.is_scannable:
            selectable.append((template, status))

    selectable.sort(key=lambda pair: (pair[1].kind != StatusKind.LIVE, pair[1].window.start.astimezone(timezone.utc)))
    return selectable
