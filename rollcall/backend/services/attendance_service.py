import logging
import math
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import (
    AttendanceRecord, AttendanceStatus, AuditAction, Frequency, GeoPoint, LocationType, Role, SessionTemplate,
)
from ..modules.clock import Clock
from ..modules.occurrence_window import OccurrenceWindow
from ..modules.session_status import DEFAULT_LOOKAHEAD_MINUTES, StatusKind, classify, select_scannable
from ..tools.geofence_verifier import verify_location
from .access import AuthContext
from .audit import AuditTrail
from .device_binding import DeviceBindingStore
from .errors import (
    AlreadyMarkedError, DeviceMismatchError, InputValidationError, NotAuthorizedError,
    NotFoundError, ServiceError, SessionMismatchError, WindowClosedError,
)
from .leave_service import LeaveOverlayResolver
from .organization_service import OrganizationService

logger = logging.getLogger(__name__)

FORCE_MARK_STATUSES = (AttendanceStatus.FORCED_PRESENT, AttendanceStatus.FORCED_ABSENT)


class ScanRequest(BaseModel):
    """A user's check-in attempt for the session they picked."""
    session_id: UUID = Field(..., description="The session the user selected.")
    scanned_session_id: UUID = Field(..., description="The session encoded in the scanned code.")
    user_location: Optional[GeoPoint] = None
    device_id: str = Field(..., min_length=1)

    @field_validator("device_id")
    @classmethod
    def device_id_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("device_id must not be empty")
        return v


class SelectableSession(BaseModel):
    """A session the user may scan for right now or shortly."""
    template: SessionTemplate
    status: StatusKind
    occurrence_date: date
    window_start: datetime
    window_end: datetime
    minutes_until_start: Optional[int] = None


def late_minutes(timestamp: datetime, window: OccurrenceWindow) -> int:
    """Whole minutes elapsed since the window opened, never negative."""
    return max(0, math.floor(window.seconds_since_start(timestamp) / 60))


class AttendanceService:
    """
    Turns scan attempts into attendance records and serves the user's view of
    their sessions.
    """
    def __init__(self, db_client: AsyncPostgresClient, device_store: DeviceBindingStore,
                 leave_resolver: LeaveOverlayResolver, organization_service: OrganizationService,
                 clock: Clock, lookahead_minutes: int = DEFAULT_LOOKAHEAD_MINUTES,
                 audit: Optional[AuditTrail] = None):
        self.db_client = db_client
        self.device_store = device_store
        self.leave_resolver = leave_resolver
        self.organization_service = organization_service
        self.clock = clock
        self.lookahead_minutes = lookahead_minutes
        self.audit = audit

    async def _get_template(self, session_id: UUID) -> SessionTemplate:
        try:
            template = await self.db_client.get_session_template(session_id)
        except Exception as e:
            logger.error(f"Database error while fetching session {session_id}.", exc_info=True)
            raise ServiceError("A server error occurred while looking up the session.") from e
        if template is None:
            raise NotFoundError("This session does not exist.")
        return template

    async def _insert(self, record: AttendanceRecord) -> AttendanceRecord:
        try:
            stored = await self.db_client.insert_attendance_record(record)
        except Exception as e:
            logger.error(f"Error saving attendance of '{record.user_id}' for session {record.session_id}.", exc_info=True)
            raise ServiceError("A server error occurred while saving the attendance.") from e
        if stored is None:
            raise AlreadyMarkedError("Attendance is already marked for this session.")
        return stored

    async def list_selectable_sessions(self, auth: AuthContext, now: Optional[datetime] = None) -> List[SelectableSession]:
        """Sessions the caller can scan for: Live first, then UpcomingSoon by start time."""
        now = self.clock.localize(now) if now else self.clock.now()
        try:
            templates = await self.db_client.get_user_session_templates(auth.organization_id, auth.user_id)
        except Exception as e:
            logger.error(f"Database error while listing sessions of '{auth.user_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while fetching your sessions.") from e

        return [
            SelectableSession(
                template=template,
                status=status.kind,
                occurrence_date=status.occurrence_date,
                window_start=status.window.start,
                window_end=status.window.end,
                minutes_until_start=status.minutes_until_start,
            )
            for template, status in select_scannable(
                templates, auth.user_id, now, self.clock.tz, self.lookahead_minutes
            )
        ]

    async def verify_attendance(self, auth: AuthContext, request: ScanRequest,
                                timestamp: Optional[datetime] = None) -> AttendanceRecord:
        """
        Validates a scan and records the outcome for the current occurrence.

        A scan outside the geofence is still recorded, as NotVerified. Every
        other failed check raises and leaves nothing behind.
        """
        timestamp = self.clock.localize(timestamp) if timestamp else self.clock.now()
        user_id = auth.user_id
        logger.info(f"User '{user_id}' is scanning for session {request.session_id}.")

        if request.scanned_session_id != request.session_id:
            logger.warning(f"User '{user_id}' scanned {request.scanned_session_id} while {request.session_id} was selected.")
            raise SessionMismatchError("The scanned code does not belong to the selected session.")

        template = await self._get_template(request.session_id)
        if template.organization_id != auth.organization_id or user_id not in template.assigned_users:
            logger.warning(f"User '{user_id}' is not assigned to session {template.session_id}.")
            raise NotAuthorizedError("You are not assigned to this session.")

        status = classify(template, timestamp, self.clock.tz, self.lookahead_minutes)
        if status.kind != StatusKind.LIVE:
            logger.warning(f"User '{user_id}' scanned session {template.session_id} while it was {status.kind.value}.")
            raise WindowClosedError("This session is not open for attendance right now.")

        day, window = status.occurrence_date, status.window
        late_by = late_minutes(timestamp, window)
        is_late = late_by > template.late_grace_minutes

        org_settings = await self.organization_service.settings_for(template.organization_id)
        if org_settings.strict_attendance and is_late:
            logger.warning(f"User '{user_id}' scanned {late_by} min late for {template.session_id} under strict attendance.")
            raise WindowClosedError("The check-in period for this session has passed.")

        try:
            existing = await self.db_client.get_attendance_record(template.session_id, day, user_id)
        except Exception as e:
            logger.error(f"Database error while checking existing attendance of '{user_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while checking your attendance.") from e
        if existing is not None:
            raise AlreadyMarkedError("Attendance is already marked for this session.")

        binding = await self.device_store.get(user_id)
        if binding is None and not await self.device_store.bind(user_id, request.device_id):
            # Another scan bound a device between our read and our write.
            binding = await self.device_store.get(user_id)
        if binding is not None and binding.device_id != request.device_id:
            logger.warning(f"User '{user_id}' scanned from an unrecognised device.")
            raise DeviceMismatchError("Attendance can only be marked from your registered device.")

        if template.location_type == LocationType.PHYSICAL:
            location_verified = verify_location(template.physical_location, request.user_location)
        else:
            location_verified = True

        if not location_verified:
            attendance_status = AttendanceStatus.NOT_VERIFIED
        elif is_late:
            attendance_status = AttendanceStatus.LATE
        else:
            attendance_status = AttendanceStatus.VERIFIED

        record = AttendanceRecord(
            record_id=uuid4(),
            session_id=template.session_id,
            occurrence_date=day,
            user_id=user_id,
            check_in_time=timestamp,
            user_location=request.user_location,
            device_id=request.device_id,
            location_verified=location_verified,
            is_late=is_late,
            late_by_minutes=late_by,
            attendance_status=attendance_status,
        )

        leave = await self.leave_resolver.resolve(user_id, day)
        if leave is not None:
            record.attendance_status = AttendanceStatus.ON_LEAVE
            record.approved_by = leave.approved_by
            record.is_late = False
            record.late_by_minutes = None
            record.location_verified = None

        stored = await self._insert(record)
        logger.info(
            f"Attendance of '{user_id}' for {template.session_id} on {day} recorded as "
            f"{stored.attendance_status.value} (late by {late_by} min, location verified: {location_verified})."
        )
        return stored

    async def force_mark(self, auth: AuthContext, session_id: UUID, user_id: str, status: AttendanceStatus,
                         occurrence_date: Optional[date] = None) -> AttendanceRecord:
        """
        Records a privileged override. Skips the window, device and location
        checks, but never overwrites an existing record.
        """
        auth.require("can_force_mark", "force-mark attendance")
        if status not in FORCE_MARK_STATUSES:
            raise InputValidationError("Force-mark status must be ForcedPresent or ForcedAbsent.")

        template = await self._get_template(session_id)
        if template.organization_id != auth.organization_id:
            raise NotAuthorizedError("You are not allowed to manage this session.")
        if auth.role == Role.SESSION_ADMIN and template.session_admin != auth.user_id:
            raise NotAuthorizedError("Session admins can only force-mark their own sessions.")
        if user_id not in template.assigned_users:
            raise InputValidationError(f"User '{user_id}' is not assigned to this session.")

        if occurrence_date is None:
            occurrence_date = template.start_date if template.frequency == Frequency.ONE_TIME else self.clock.today()

        record = AttendanceRecord(
            record_id=uuid4(),
            session_id=template.session_id,
            occurrence_date=occurrence_date,
            user_id=user_id,
            check_in_time=self.clock.now(),
            location_verified=False,
            is_late=False,
            attendance_status=status,
            approved_by=auth.user_id,
        )
        stored = await self._insert(record)
        logger.info(f"'{auth.user_id}' force-marked '{user_id}' as {status.value} for {session_id} on {occurrence_date}.")
        if self.audit is not None:
            await self.audit.record(
                auth, AuditAction.FORCE_ATTENDANCE_CORRECTION, target_user_id=user_id,
                details={"session_id": str(session_id), "occurrence_date": occurrence_date.isoformat(), "status": status.value},
            )
        return stored

    async def get_my_records(self, auth: AuthContext, limit: int = 50) -> List[AttendanceRecord]:
        try:
            return await self.db_client.get_user_attendance_records(auth.user_id, limit)
        except Exception as e:
            logger.error(f"Database error while fetching records of '{auth.user_id}'.", exc_info=True)
            raise ServiceError("An error occurred while querying your attendance records.") from e
