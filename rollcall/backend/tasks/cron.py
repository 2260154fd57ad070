import logging
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import uuid4

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import AttendanceRecord, AttendanceStatus, SessionTemplate
from ..modules.clock import Clock
from ..modules.occurrence_window import compute_window, crosses_midnight
from ..modules.recurrence import is_occurrence

logger = logging.getLogger(__name__)


async def _finalize_occurrence(db_client: AsyncPostgresClient, template: SessionTemplate,
                               day: date, end: datetime) -> int:
    written = 0
    existing = {
        record.user_id
        for record in await db_client.get_attendance_records([template.session_id], day, day)
    }
    for user_id in template.assigned_users:
        if user_id in existing:
            continue
        leave = await db_client.find_approved_leave(user_id, day)
        if leave is None or not leave.covers(day):
            continue
        record = AttendanceRecord(
            record_id=uuid4(),
            session_id=template.session_id,
            occurrence_date=day,
            user_id=user_id,
            check_in_time=end,
            location_verified=None,
            attendance_status=AttendanceStatus.ON_LEAVE,
            approved_by=leave.approved_by,
        )
        if await db_client.insert_attendance_record(record) is not None:
            written += 1
    return written


async def finalize_finished_occurrences(db_client: AsyncPostgresClient, clock: Clock,
                                        now: Optional[datetime] = None) -> int:
    """
    Writes OnLeave records for users on approved leave who have no record for
    a finished occurrence. Looks at today's occurrences and, for sessions that
    run past midnight, yesterday's. Absences are not written; reports derive
    them. Returns the number of records written.
    """
    logger.info("Running finalize_finished_occurrences...")
    now = clock.localize(now) if now else clock.now()
    today = now.date()
    total = 0

    for template in await db_client.get_all_active_session_templates():
        try:
            days = [today - timedelta(days=1), today] if crosses_midnight(template) else [today]
            for day in days:
                if not is_occurrence(template, day):
                    continue
                window = compute_window(template, day, clock.tz)
                if not window.has_ended(now):
                    continue
                written = await _finalize_occurrence(db_client, template, day, window.end)
                if written:
                    logger.info(f"Saved {written} on-leave record(s) for session {template.session_id} on {day}.")
                total += written
        except Exception as e:
            logger.error(f"Failed to finalize session {template.session_id}: {e}", exc_info=True)

    return total
