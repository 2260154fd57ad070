import logging
from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import AttendanceRecord, LeaveRequest, SessionTemplate
from ..modules.attendance_aggregator import (
    AnalyticsData, OnLeavePolicy, SessionLog, build_analytics, build_session_logs,
)
from ..modules.clock import Clock
from .access import AuthContext
from .errors import InputValidationError, NotAuthorizedError, ServiceError

logger = logging.getLogger(__name__)


class ReportService:
    """
    Attendance analytics and per-occurrence logs for managers.

    Cancelled sessions stay in reports for the occurrences held before their
    cancellation. Users with an approved leave and no record count as OnLeave.
    """
    def __init__(self, db_client: AsyncPostgresClient, clock: Clock,
                 policy: OnLeavePolicy = OnLeavePolicy.EXCLUDE):
        self.db_client = db_client
        self.clock = clock
        self.policy = policy

    async def _load(self, auth: AuthContext, session_ids: List[UUID], start: date, end: date,
                    batch_ids: Optional[List[UUID]] = None
                    ) -> Tuple[List[SessionTemplate], List[AttendanceRecord], List[LeaveRequest]]:
        auth.require("can_view_reports", "view attendance reports")
        if start > end:
            raise InputValidationError("start date must not be after end date.")

        try:
            if session_ids or batch_ids:
                templates = await self.db_client.get_session_templates_by_ids(list(dict.fromkeys(session_ids)))
                templates += await self.db_client.get_session_templates_by_batches(list(dict.fromkeys(batch_ids or [])))
            else:
                templates = await self.db_client.get_session_templates(auth.organization_id, include_cancelled=True)
        except Exception as e:
            logger.error("Database error while loading sessions for a report.", exc_info=True)
            raise ServiceError("A server error occurred while building the report.") from e
        templates = list({t.session_id: t for t in templates}.values())

        foreign = [t.session_id for t in templates if t.organization_id != auth.organization_id]
        if foreign:
            logger.warning(f"User '{auth.user_id}' requested a report on sessions of another organization: {foreign}")
            raise NotAuthorizedError("You are not allowed to view reports for these sessions.")

        user_ids = sorted({user_id for t in templates for user_id in t.assigned_users})
        try:
            records = await self.db_client.get_attendance_records([t.session_id for t in templates], start, end)
            leaves = await self.db_client.get_approved_leaves(user_ids, start, end)
        except Exception as e:
            logger.error("Database error while loading attendance records for a report.", exc_info=True)
            raise ServiceError("A server error occurred while building the report.") from e
        return templates, records, leaves

    async def get_analytics(self, auth: AuthContext, session_ids: List[UUID], start: date, end: date,
                            batch_ids: Optional[List[UUID]] = None) -> AnalyticsData:
        templates, records, leaves = await self._load(auth, session_ids, start, end, batch_ids)
        logger.info(f"Building analytics for {len(templates)} session(s) from {start} to {end}.")
        return build_analytics(templates, records, start, end, self.clock.now(), self.clock.tz, self.policy, leaves=leaves)

    async def get_session_logs(self, auth: AuthContext, session_ids: List[UUID], start: date, end: date,
                               batch_ids: Optional[List[UUID]] = None) -> List[SessionLog]:
        templates, records, leaves = await self._load(auth, session_ids, start, end, batch_ids)
        return build_session_logs(templates, records, start, end, self.clock.now(), self.clock.tz, self.policy, leaves=leaves)
