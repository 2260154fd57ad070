import json
import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

import asyncpg

from ..models.db_models import (
    AttendanceRecord, AuditEntry, ClassBatch, DeviceBinding, GeoPoint, Geofence, LeaveRequest,
    LeaveStatus, LeaveType, OrganizationSettings, SessionTemplate, User, UserAccount,
)
from .schema import SCHEMA_SQL

logger = logging.getLogger(__name__)

USER_COLUMNS = "user_id, organization_id, email, full_name, role"


def _template_from_record(record: asyncpg.Record) -> SessionTemplate:
    data = dict(record)
    latitude, longitude, radius = data.pop("latitude"), data.pop("longitude"), data.pop("radius_meters")
    if latitude is not None and longitude is not None:
        data["physical_location"] = Geofence(latitude=latitude, longitude=longitude, radius_meters=radius or 100)
    return SessionTemplate(**data)


def _attendance_from_record(record: asyncpg.Record) -> AttendanceRecord:
    data = dict(record)
    latitude, longitude = data.pop("latitude"), data.pop("longitude")
    if latitude is not None and longitude is not None:
        data["user_location"] = GeoPoint(latitude=latitude, longitude=longitude)
    return AttendanceRecord(**data)


def _template_values(t: SessionTemplate) -> tuple:
    fence = t.physical_location
    return (
        t.session_id, t.organization_id, t.name, t.description, t.frequency.value,
        t.start_date, t.end_date, t.start_time, t.end_time, [d.value for d in t.weekly_days],
        t.location_type.value,
        fence.latitude if fence else None, fence.longitude if fence else None,
        fence.radius_meters if fence else None,
        t.virtual_location, t.assigned_users, t.is_cancelled, t.late_grace_minutes,
        t.session_admin, t.created_by, t.cancelled_on, t.batch_id,
    )


class AsyncPostgresClient:
    """
    PostgreSQL client handling every database operation.
    """
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def create_schema(self):
        """Creates the tables and constraints if they do not exist yet."""
        async with self._pool.acquire() as connection:
            await connection.execute(SCHEMA_SQL)
        logger.info("Database schema is in place.")

    # ===== Users =====

    async def add_users(self, users: List[UserAccount]):
        """Adds new users. Existing user ids are left untouched."""
        if not users:
            return
        query = """
            INSERT INTO Users (user_id, organization_id, email, full_name, role, password_hash)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (user_id) DO NOTHING;
        """
        user_data = [(u.user_id, u.organization_id, u.email, u.full_name, u.role.value, u.password_hash) for u in users]
        async with self._pool.acquire() as connection:
            await connection.executemany(query, user_data)

    async def get_users(self, user_ids: List[str]) -> List[User]:
        """Returns the users with the given ids, without credentials."""
        if not user_ids:
            return []
        query = f"SELECT {USER_COLUMNS} FROM Users WHERE user_id = ANY($1);"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, user_ids)
            return [User(**record) for record in records]

    async def get_user(self, user_id: str) -> Optional[User]:
        query = f"SELECT {USER_COLUMNS} FROM Users WHERE user_id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, user_id)
            return User(**record) if record else None

    async def get_user_credentials(self, email: str) -> Optional[UserAccount]:
        """Fetches a user together with the password hash, for login only."""
        query = "SELECT * FROM Users WHERE lower(email) = lower($1);"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, email)
            return UserAccount(**record) if record else None

    # ===== Session Templates =====

    async def add_session_template(self, template: SessionTemplate):
        query = """
            INSERT INTO SessionTemplates (
                session_id, organization_id, name, description, frequency,
                start_date, end_date, start_time, end_time, weekly_days,
                location_type, latitude, longitude, radius_meters,
                virtual_location, assigned_users, is_cancelled, late_grace_minutes,
                session_admin, created_by, cancelled_on, batch_id
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18, $19, $20, $21, $22);
        """
        async with self._pool.acquire() as connection:
            await connection.execute(query, *_template_values(template))

    async def update_session_template(self, template: SessionTemplate):
        """Overwrites every mutable column of an existing template."""
        query = """
            UPDATE SessionTemplates SET
                organization_id = $2, name = $3, description = $4, frequency = $5,
                start_date = $6, end_date = $7, start_time = $8, end_time = $9, weekly_days = $10,
                location_type = $11, latitude = $12, longitude = $13, radius_meters = $14,
                virtual_location = $15, assigned_users = $16, is_cancelled = $17,
                late_grace_minutes = $18, session_admin = $19, created_by = $20, cancelled_on = $21,
                batch_id = $22
            WHERE session_id = $1;
        """
        async with self._pool.acquire() as connection:
            return await connection.execute(query, *_template_values(template))

    async def get_session_template(self, session_id: UUID) -> Optional[SessionTemplate]:
        query = "SELECT * FROM SessionTemplates WHERE session_id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, session_id)
            return _template_from_record(record) if record else None

    async def get_session_templates(self, organization_id: str, include_cancelled: bool = False) -> List[SessionTemplate]:
        query = """
            SELECT * FROM SessionTemplates
            WHERE organization_id = $1 AND ($2 OR is_cancelled = FALSE)
            ORDER BY start_date, start_time;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, organization_id, include_cancelled)
            return [_template_from_record(record) for record in records]

    async def get_session_templates_by_ids(self, session_ids: List[UUID]) -> List[SessionTemplate]:
        if not session_ids:
            return []
        query = "SELECT * FROM SessionTemplates WHERE session_id = ANY($1::uuid[]);"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, session_ids)
            return [_template_from_record(record) for record in records]

    async def get_user_session_templates(self, organization_id: str, user_id: str) -> List[SessionTemplate]:
        """Non-cancelled templates of the organization that the user is assigned to."""
        query = """
            SELECT * FROM SessionTemplates
            WHERE organization_id = $1 AND $2 = ANY(assigned_users) AND is_cancelled = FALSE;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, organization_id, user_id)
            return [_template_from_record(record) for record in records]

    async def get_all_active_session_templates(self) -> List[SessionTemplate]:
        query = "SELECT * FROM SessionTemplates WHERE is_cancelled = FALSE;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query)
            return [_template_from_record(record) for record in records]

    async def get_session_templates_by_batches(self, batch_ids: List[UUID]) -> List[SessionTemplate]:
        """Every template of the given batches, cancelled ones included."""
        if not batch_ids:
            return []
        query = "SELECT * FROM SessionTemplates WHERE batch_id = ANY($1::uuid[]) ORDER BY start_date, start_time;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, batch_ids)
            return [_template_from_record(record) for record in records]

    async def clear_template_batch(self, batch_id: UUID) -> int:
        """Detaches every template from the batch and returns how many were linked."""
        query = "UPDATE SessionTemplates SET batch_id = NULL WHERE batch_id = $1 RETURNING session_id;"
        async with self._pool.acquire() as connection:
            detached = await connection.fetch(query, batch_id)
            return len(detached)

    # ===== Class Batches =====

    async def add_class_batch(self, batch: ClassBatch):
        query = """
            INSERT INTO ClassBatches (
                batch_id, organization_id, name, description, default_start_time,
                default_location, created_by, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8);
        """
        async with self._pool.acquire() as connection:
            await connection.execute(
                query, batch.batch_id, batch.organization_id, batch.name, batch.description,
                batch.default_start_time, batch.default_location, batch.created_by, batch.created_at,
            )

    async def update_class_batch(self, batch: ClassBatch):
        query = """
            UPDATE ClassBatches SET
                name = $2, description = $3, default_start_time = $4, default_location = $5
            WHERE batch_id = $1;
        """
        async with self._pool.acquire() as connection:
            return await connection.execute(
                query, batch.batch_id, batch.name, batch.description,
                batch.default_start_time, batch.default_location,
            )

    async def get_class_batch(self, batch_id: UUID) -> Optional[ClassBatch]:
        query = "SELECT * FROM ClassBatches WHERE batch_id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, batch_id)
            return ClassBatch(**record) if record else None

    async def get_class_batches(self, organization_id: str) -> List[ClassBatch]:
        query = "SELECT * FROM ClassBatches WHERE organization_id = $1 ORDER BY created_at DESC;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, organization_id)
            return [ClassBatch(**record) for record in records]

    async def delete_class_batch(self, batch_id: UUID) -> bool:
        query = "DELETE FROM ClassBatches WHERE batch_id = $1 RETURNING batch_id;"
        async with self._pool.acquire() as connection:
            deleted = await connection.fetchval(query, batch_id)
            return deleted is not None

    # ===== Attendance Records =====

    async def insert_attendance_record(self, record: AttendanceRecord) -> Optional[AttendanceRecord]:
        """
        Inserts a record unless one already exists for the same
        (session_id, occurrence_date, user_id). Returns the stored row, or None
        when the unique constraint kept the existing one.
        """
        query = """
            INSERT INTO AttendanceRecords (
                record_id, session_id, occurrence_date, user_id, check_in_time,
                latitude, longitude, device_id, location_verified, is_late,
                late_by_minutes, attendance_status, approved_by
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            ON CONFLICT (session_id, occurrence_date, user_id) DO NOTHING
            RETURNING *;
        """
        location = record.user_location
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(
                query, record.record_id, record.session_id, record.occurrence_date, record.user_id,
                record.check_in_time,
                location.latitude if location else None, location.longitude if location else None,
                record.device_id, record.location_verified, record.is_late, record.late_by_minutes,
                record.attendance_status.value, record.approved_by,
            )
            return _attendance_from_record(row) if row else None

    async def get_attendance_record(self, session_id: UUID, occurrence_date: date, user_id: str) -> Optional[AttendanceRecord]:
        query = """
            SELECT * FROM AttendanceRecords
            WHERE session_id = $1 AND occurrence_date = $2 AND user_id = $3;
        """
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(query, session_id, occurrence_date, user_id)
            return _attendance_from_record(row) if row else None

    async def get_attendance_records(self, session_ids: List[UUID], start: date, end: date) -> List[AttendanceRecord]:
        """All records of the given sessions whose occurrence falls in [start, end]."""
        if not session_ids:
            return []
        query = """
            SELECT * FROM AttendanceRecords
            WHERE session_id = ANY($1::uuid[]) AND occurrence_date BETWEEN $2 AND $3;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, session_ids, start, end)
            return [_attendance_from_record(record) for record in records]

    async def get_user_attendance_records(self, user_id: str, limit: int = 50) -> List[AttendanceRecord]:
        query = """
            SELECT * FROM AttendanceRecords
            WHERE user_id = $1
            ORDER BY check_in_time DESC
            LIMIT $2;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, user_id, limit)
            return [_attendance_from_record(record) for record in records]

    # ===== Leave Requests =====

    async def add_leave_request(self, leave: LeaveRequest):
        query = """
            INSERT INTO LeaveRequests (
                leave_id, user_id, organization_id, leave_type, start_date, end_date,
                dates, days_count, reason, status, approved_by, rejection_reason, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13);
        """
        async with self._pool.acquire() as connection:
            await connection.execute(
                query, leave.leave_id, leave.user_id, leave.organization_id, leave.leave_type.value,
                leave.start_date, leave.end_date, leave.dates, leave.days_count, leave.reason,
                leave.status.value, leave.approved_by, leave.rejection_reason, leave.created_at,
            )

    async def get_leave_request(self, leave_id: UUID) -> Optional[LeaveRequest]:
        query = "SELECT * FROM LeaveRequests WHERE leave_id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, leave_id)
            return LeaveRequest(**record) if record else None

    async def get_leave_requests(self, organization_id: Optional[str] = None, user_id: Optional[str] = None,
                                 status: Optional[LeaveStatus] = None,
                                 leave_type: Optional[LeaveType] = None) -> List[LeaveRequest]:
        """Lists leave requests matching every given filter, newest first."""
        conditions, params = [], []
        for column, value in (("organization_id", organization_id), ("user_id", user_id),
                              ("status", status.value if status else None),
                              ("leave_type", leave_type.value if leave_type else None)):
            if value is not None:
                params.append(value)
                conditions.append(f"{column} = ${len(params)}")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"SELECT * FROM LeaveRequests {where} ORDER BY created_at DESC;"
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, *params)
            return [LeaveRequest(**record) for record in records]

    async def update_leave_status(self, leave_id: UUID, status: LeaveStatus, approved_by: str,
                                  rejection_reason: Optional[str] = None) -> Optional[LeaveRequest]:
        """
        Moves a Pending leave to its final status. Returns None when the leave
        was no longer Pending, so two reviewers cannot both decide it.
        """
        query = """
            UPDATE LeaveRequests
            SET status = $2, approved_by = $3, rejection_reason = $4
            WHERE leave_id = $1 AND status = 'Pending'
            RETURNING *;
        """
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, leave_id, status.value, approved_by, rejection_reason)
            return LeaveRequest(**record) if record else None

    async def find_approved_leave(self, user_id: str, day: date) -> Optional[LeaveRequest]:
        """Returns an Approved leave of the user covering `day`, if any."""
        query = """
            SELECT * FROM LeaveRequests
            WHERE user_id = $1 AND status = 'Approved'
              AND (
                $2 = ANY(dates)
                OR (cardinality(dates) = 0 AND start_date <= $2 AND $2 <= end_date)
              )
            ORDER BY created_at
            LIMIT 1;
        """
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, user_id, day)
            return LeaveRequest(**record) if record else None

    async def get_approved_leaves(self, user_ids: List[str], start: date, end: date) -> List[LeaveRequest]:
        """Approved leaves of the given users whose span overlaps [start, end]."""
        if not user_ids:
            return []
        query = """
            SELECT * FROM LeaveRequests
            WHERE user_id = ANY($1::text[]) AND status = 'Approved'
              AND start_date <= $3 AND end_date >= $2;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, user_ids, start, end)
            return [LeaveRequest(**record) for record in records]

    # ===== Device Bindings =====

    async def get_device_binding(self, user_id: str) -> Optional[DeviceBinding]:
        query = "SELECT * FROM DeviceBindings WHERE user_id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, user_id)
            return DeviceBinding(**record) if record else None

    async def create_device_binding(self, binding: DeviceBinding) -> bool:
        """Binds only if the user has no binding yet. True when this call created it."""
        query = """
            INSERT INTO DeviceBindings (user_id, device_id, bound_at)
            VALUES ($1, $2, $3)
            ON CONFLICT (user_id) DO NOTHING
            RETURNING user_id;
        """
        async with self._pool.acquire() as connection:
            created = await connection.fetchval(query, binding.user_id, binding.device_id, binding.bound_at)
            return created is not None

    async def delete_device_binding(self, user_id: str) -> bool:
        query = "DELETE FROM DeviceBindings WHERE user_id = $1 RETURNING user_id;"
        async with self._pool.acquire() as connection:
            deleted = await connection.fetchval(query, user_id)
            return deleted is not None

    # ===== Organization Settings =====

    async def get_organization_settings(self, organization_id: str) -> Optional[OrganizationSettings]:
        query = "SELECT * FROM OrganizationSettings WHERE organization_id = $1;"
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(query, organization_id)
            return OrganizationSettings(**record) if record else None

    async def upsert_organization_settings(self, org_settings: OrganizationSettings) -> OrganizationSettings:
        query = """
            INSERT INTO OrganizationSettings (organization_id, late_attendance_limit, strict_attendance)
            VALUES ($1, $2, $3)
            ON CONFLICT (organization_id) DO UPDATE SET
                late_attendance_limit = EXCLUDED.late_attendance_limit,
                strict_attendance = EXCLUDED.strict_attendance
            RETURNING *;
        """
        async with self._pool.acquire() as connection:
            record = await connection.fetchrow(
                query, org_settings.organization_id, org_settings.late_attendance_limit,
                org_settings.strict_attendance,
            )
            return OrganizationSettings(**record)

    # ===== Audit Log =====

    async def add_audit_entry(self, entry: AuditEntry):
        query = """
            INSERT INTO AuditLog (
                entry_id, organization_id, action, performed_by, performer_role,
                target_user_id, details, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8);
        """
        async with self._pool.acquire() as connection:
            await connection.execute(
                query, entry.entry_id, entry.organization_id, entry.action.value, entry.performed_by,
                entry.performer_role.value, entry.target_user_id, json.dumps(entry.details, default=str),
                entry.created_at,
            )

    async def get_audit_entries(self, organization_id: str, limit: int = 100) -> List[AuditEntry]:
        """Newest first."""
        query = """
            SELECT * FROM AuditLog
            WHERE organization_id = $1
            ORDER BY created_at DESC
            LIMIT $2;
        """
        async with self._pool.acquire() as connection:
            records = await connection.fetch(query, organization_id, limit)
            entries = []
            for record in records:
                data = dict(record)
                data["details"] = json.loads(data["details"]) if data["details"] else {}
                entries.append(AuditEntry(**data))
            return entries
