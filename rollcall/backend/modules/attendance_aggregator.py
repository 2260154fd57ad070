# rollcall/backend/modules/attendance_aggregator.py

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel

from ..models.db_models import AttendanceRecord, AttendanceStatus, LeaveRequest, LeaveStatus, SessionTemplate
from .occurrence_window import compute_window
from .recurrence import iter_occurrences

RANKING_SIZE = 5


class OnLeavePolicy(str, Enum):
    EXCLUDE = "exclude"
    COUNT_AS_ABSENT = "count_as_absent"


class Outcome(str, Enum):
    ON_TIME = "on_time"
    LATE = "late"
    ABSENT = "absent"
    ON_LEAVE = "on_leave"


class TimelinePoint(BaseModel):
    day: date
    percentage: float
    late_count: int


class AttendanceSummary(BaseModel):
    present: int = 0
    late: int = 0
    absent: int = 0
    on_leave: int = 0


class UserRanking(BaseModel):
    user_id: str
    assigned: int
    attended: int
    on_time: int
    late: int
    absent: int
    percentage: float


class AnalyticsData(BaseModel):
    timeline: List[TimelinePoint]
    summary: AttendanceSummary
    top_performers: List[UserRanking]
    defaulters: List[UserRanking]


class LogStatus(str, Enum):
    COMPLETED = "Completed"
    TODAY = "Today"
    UPCOMING = "Upcoming"


class SessionLog(BaseModel):
    session_id: UUID
    name: str
    occurrence_date: date
    total_users: int
    present_count: int
    late_count: int
    absent_count: int
    on_leave_count: int
    status: LogStatus


@dataclass
class _Tally:
    assigned: int = 0
    on_time: int = 0
    late: int = 0
    absent: int = 0
    on_leave: int = 0

    @property
    def attended(self) -> int:
        return self.on_time + self.late

    def add(self, outcome: Outcome, policy: OnLeavePolicy):
        if outcome == Outcome.ON_LEAVE:
            self.on_leave += 1
            if policy == OnLeavePolicy.EXCLUDE:
                return
            outcome = Outcome.ABSENT
        self.assigned += 1
        if outcome == Outcome.ON_TIME:
            self.on_time += 1
        elif outcome == Outcome.LATE:
            self.late += 1
        else:
            self.absent += 1


def _percentage(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


def outcome_of(record: Optional[AttendanceRecord]) -> Outcome:
    """Maps a stored record (or its absence) to what the reports count it as."""
    if record is None:
        return Outcome.ABSENT
    status = record.attendance_status
    if status in (AttendanceStatus.VERIFIED, AttendanceStatus.FORCED_PRESENT):
        return Outcome.ON_TIME
    if status == AttendanceStatus.LATE:
        return Outcome.LATE
    if status == AttendanceStatus.ON_LEAVE:
        return Outcome.ON_LEAVE
    # NotVerified scans and forced absences are not attendance.
    return Outcome.ABSENT


def _index_records(records: Iterable[AttendanceRecord]) -> Dict[Tuple[UUID, date, str], AttendanceRecord]:
    return {(r.session_id, r.occurrence_date, r.user_id): r for r in records}


class _Ledger:
    """Records and approved leaves of a report, looked up per occurrence and user."""

    def __init__(self, records: Iterable[AttendanceRecord], leaves: Iterable[LeaveRequest]):
        self.by_key = _index_records(records)
        self.leaves_by_user: Dict[str, List[LeaveRequest]] = defaultdict(list)
        for leave in leaves:
            if leave.status == LeaveStatus.APPROVED:
                self.leaves_by_user[leave.user_id].append(leave)

    def outcome(self, session_id: UUID, day: date, user_id: str) -> Outcome:
        record = self.by_key.get((session_id, day, user_id))
        # Leave approved after the day, with no OnLeave record written for it.
        if record is None and any(leave.covers(day) for leave in self.leaves_by_user.get(user_id, ())):
            return Outcome.ON_LEAVE
        return outcome_of(record)


def _occurrences(templates: Iterable[SessionTemplate], first: date, last: date):
    for template in templates:
        for day in iter_occurrences(template, first, last):
            yield template, day


def build_analytics(templates: Iterable[SessionTemplate], records: Iterable[AttendanceRecord],
                    first: date, last: date, now: datetime, tz: tzinfo,
                    policy: OnLeavePolicy = OnLeavePolicy.EXCLUDE,
                    leaves: Iterable[LeaveRequest] = ()) -> AnalyticsData:
    """
    Rolls records up into a per-day timeline, an overall summary and the
    best/worst attending users. Only occurrences whose window has already
    started are analysed. A missing record counts as an absence unless an
    approved leave covers the day.
    """
    ledger = _Ledger(records, leaves)
    per_day: Dict[date, _Tally] = defaultdict(_Tally)
    per_user: Dict[str, _Tally] = defaultdict(_Tally)
    summary = _Tally()

    for template, day in _occurrences(templates, first, last):
        if not compute_window(template, day, tz).has_started(now):
            continue
        for user_id in template.assigned_users:
            outcome = ledger.outcome(template.session_id, day, user_id)
            per_day[day].add(outcome, policy)
            per_user[user_id].add(outcome, policy)
            summary.add(outcome, policy)

    timeline = [
        TimelinePoint(day=day, percentage=_percentage(t.attended, t.assigned), late_count=t.late)
        for day, t in sorted(per_day.items())
    ]

    rankings = [
        UserRanking(
            user_id=user_id, assigned=t.assigned, attended=t.attended, on_time=t.on_time,
            late=t.late, absent=t.absent, percentage=_percentage(t.attended, t.assigned),
        )
        for user_id, t in per_user.items()
        if t.assigned > 0
    ]
    top_performers = sorted(
        rankings, key=lambda u: (-u.attended / u.assigned, -u.on_time, u.user_id)
    )[:RANKING_SIZE]
    defaulters = sorted(
        rankings, key=lambda u: (u.attended / u.assigned, -u.absent, u.user_id)
    )[:RANKING_SIZE]

    return AnalyticsData(
        timeline=timeline,
        summary=AttendanceSummary(
            present=summary.on_time, late=summary.late, absent=summary.absent, on_leave=summary.on_leave
        ),
        top_performers=top_performers,
        defaulters=defaulters,
    )


def build_session_logs(templates: Iterable[SessionTemplate], records: Iterable[AttendanceRecord],
                       first: date, last: date, now: datetime, tz: tzinfo,
                       policy: OnLeavePolicy = OnLeavePolicy.EXCLUDE,
                       leaves: Iterable[LeaveRequest] = ()) -> List[SessionLog]:
    """One row per occurrence in the range, newest first."""
    ledger = _Ledger(records, leaves)
    local_today = now.astimezone(tz).date()
    logs = []

    for template, day in _occurrences(templates, first, last):
        window = compute_window(template, day, tz)
        if window.has_ended(now):
            status = LogStatus.COMPLETED
        elif day == local_today or window.contains(now):
            status = LogStatus.TODAY
        else:
            status = LogStatus.UPCOMING

        tally = _Tally()
        for user_id in template.assigned_users:
            tally.add(ledger.outcome(template.session_id, day, user_id), policy)

        logs.append(SessionLog(
            session_id=template.session_id,
            name=template.name,
            occurrence_date=day,
            total_users=len(template.assigned_users),
            present_count=tally.attended,
            late_count=tally.late,
            absent_count=0 if status == LogStatus.UPCOMING else tally.absent,
            on_leave_count=tally.on_leave,
            status=status,
        ))

    logs.sort(key=lambda log: (log.occurrence_date, log.name), reverse=True)
    return logs
