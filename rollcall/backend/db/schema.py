# rollcall/backend/db/schema.py

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS Users (
    user_id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    full_name TEXT NOT NULL,
    role TEXT NOT NULL,
    password_hash TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS OrganizationSettings (
    organization_id TEXT PRIMARY KEY,
    late_attendance_limit INTEGER NOT NULL DEFAULT 30 CHECK (late_attendance_limit >= 0),
    strict_attendance BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE TABLE IF NOT EXISTS ClassBatches (
    batch_id UUID PRIMARY KEY,
    organization_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    default_start_time TIME,
    default_location TEXT,
    created_by TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_class_batches_org ON ClassBatches (organization_id);

CREATE TABLE IF NOT EXISTS SessionTemplates (
    session_id UUID PRIMARY KEY,
    organization_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    frequency TEXT NOT NULL,
    start_date DATE NOT NULL,
    end_date DATE,
    start_time TIME NOT NULL,
    end_time TIME NOT NULL,
    weekly_days TEXT[] NOT NULL DEFAULT '{}',
    location_type TEXT NOT NULL,
    latitude DOUBLE PRECISION,
    longitude DOUBLE PRECISION,
    radius_meters DOUBLE PRECISION,
    virtual_location TEXT,
    assigned_users TEXT[] NOT NULL DEFAULT '{}',
    is_cancelled BOOLEAN NOT NULL DEFAULT FALSE,
    cancelled_on DATE,
    late_grace_minutes INTEGER NOT NULL DEFAULT 30,
    session_admin TEXT,
    created_by TEXT NOT NULL,
    batch_id UUID REFERENCES ClassBatches (batch_id),
    CHECK (end_date IS NULL OR end_date >= start_date)
);

ALTER TABLE SessionTemplates ADD COLUMN IF NOT EXISTS cancelled_on DATE;
ALTER TABLE SessionTemplates ADD COLUMN IF NOT EXISTS batch_id UUID REFERENCES ClassBatches (batch_id);

CREATE INDEX IF NOT EXISTS idx_session_templates_org ON SessionTemplates (organization_id);

CREATE TABLE IF NOT EXISTS AttendanceRecords (
    record_id UUID PRIMARY KEY,
    session_id UUID NOT NULL REFERENCES SessionTemplates (session_id),
    occurrence_date DATE NOT NULL,
    user_id TEXT NOT NULL,
    check_in_time TIMESTAMPTZ NOT NULL,
    latitude DOUBLE PRECISION,
    longitude DOUBLE PRECISION,
    device_id TEXT,
    location_verified BOOLEAN DEFAULT FALSE,
    is_late BOOLEAN NOT NULL DEFAULT FALSE,
    late_by_minutes INTEGER,
    attendance_status TEXT NOT NULL,
    approved_by TEXT,
    CONSTRAINT uq_attendance_occurrence_user UNIQUE (session_id, occurrence_date, user_id)
);

ALTER TABLE AttendanceRecords ALTER COLUMN location_verified DROP NOT NULL;

CREATE INDEX IF NOT EXISTS idx_attendance_user ON AttendanceRecords (user_id, check_in_time DESC);

CREATE TABLE IF NOT EXISTS LeaveRequests (
    leave_id UUID PRIMARY KEY,
    user_id TEXT NOT NULL,
    organization_id TEXT NOT NULL,
    leave_type TEXT NOT NULL,
    start_date DATE NOT NULL,
    end_date DATE NOT NULL,
    dates DATE[] NOT NULL DEFAULT '{}',
    days_count DOUBLE PRECISION NOT NULL,
    reason TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Pending',
    approved_by TEXT,
    rejection_reason TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    CHECK (end_date >= start_date)
);

CREATE INDEX IF NOT EXISTS idx_leave_user_status ON LeaveRequests (user_id, status);

CREATE TABLE IF NOT EXISTS DeviceBindings (
    user_id TEXT PRIMARY KEY,
    device_id TEXT NOT NULL,
    bound_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS AuditLog (
    entry_id UUID PRIMARY KEY,
    organization_id TEXT NOT NULL,
    action TEXT NOT NULL,
    performed_by TEXT NOT NULL,
    performer_role TEXT NOT NULL,
    target_user_id TEXT,
    details JSONB NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_audit_org_time ON AuditLog (organization_id, created_at DESC);
"""
