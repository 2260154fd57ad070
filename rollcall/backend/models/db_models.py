# rollcall/backend/models/db_models.py

from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import date, datetime, time
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID


class Role(str, Enum):
    SUPER_ADMIN = "SuperAdmin"
    COMPANY_ADMIN = "CompanyAdmin"
    MANAGER = "Manager"
    SESSION_ADMIN = "SessionAdmin"
    END_USER = "EndUser"


class Frequency(str, Enum):
    ONE_TIME = "OneTime"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"


class Weekday(str, Enum):
    """Weekday names in `date.weekday()` order."""
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def of(cls, day: date) -> "Weekday":
        return list(cls)[day.weekday()]


class LocationType(str, Enum):
    PHYSICAL = "Physical"
    VIRTUAL = "Virtual"


class AttendanceStatus(str, Enum):
    VERIFIED = "Verified"
    NOT_VERIFIED = "NotVerified"
    LATE = "Late"
    ON_LEAVE = "OnLeave"
    FORCED_PRESENT = "ForcedPresent"
    FORCED_ABSENT = "ForcedAbsent"


class LeaveType(str, Enum):
    PERSONAL = "Personal"
    CASUAL = "Casual"
    SICK = "Sick"
    EXTRA = "Extra"


class LeaveStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class GeoPoint(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Geofence(GeoPoint):
    """Circular area around a physical venue."""
    radius_meters: float = Field(100, gt=0, description="Radius in meters around the center point.")


class User(BaseModel):
    """
    Represents a user in the system, mapping to the 'Users' table.
    """
    user_id: str = Field(..., description="Unique identifier of the user, acting as the Primary Key")
    organization_id: str
    email: str
    full_name: str
    role: Role


class UserAccount(User):
    """User row including credentials. Never leaves the data-access layer."""
    password_hash: str


class UserRef(BaseModel):
    """A user known only by id."""
    kind: Literal["ref"] = "ref"
    user_id: str


class PopulatedUser(BaseModel):
    """A user resolved to its full record."""
    kind: Literal["populated"] = "populated"
    user: User

    @property
    def user_id(self) -> str:
        return self.user.user_id


UserReference = Annotated[Union[UserRef, PopulatedUser], Field(discriminator="kind")]


class SessionTemplate(BaseModel):
    """
    A (possibly recurring) attendance session, mapping to the 'SessionTemplates' table.
    Individual occurrences are never stored; they are derived from the schedule.
    """
    session_id: UUID
    organization_id: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    start_time: time = Field(..., description="Local wall-clock start, minute precision.")
    end_time: time = Field(..., description="Local wall-clock end, minute precision.")
    weekly_days: List[Weekday] = Field(default_factory=list)
    location_type: LocationType
    physical_location: Optional[Geofence] = None
    virtual_location: Optional[str] = None
    assigned_users: List[str] = Field(default_factory=list)
    is_cancelled: bool = False
    cancelled_on: Optional[date] = Field(None, description="Local date the cancellation took effect; earlier occurrences are kept.")
    late_grace_minutes: int = Field(30, ge=0)
    session_admin: Optional[str] = None
    created_by: str
    batch_id: Optional[UUID] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def truncate_to_minute(cls, v: time) -> time:
        return v.replace(second=0, microsecond=0, tzinfo=None)

    @field_validator("assigned_users", "weekly_days")
    @classmethod
    def drop_duplicates(cls, v: list) -> list:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def check_schedule(self) -> "SessionTemplate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be earlier than start_date")
        if self.frequency == Frequency.WEEKLY and not self.weekly_days:
            raise ValueError("Weekly sessions need at least one entry in weekly_days")
        if self.location_type == LocationType.PHYSICAL and self.physical_location is None:
            raise ValueError("Physical sessions need a physical_location geofence")
        return self


class AttendanceRecord(BaseModel):
    """
    One user's attendance for one occurrence, mapping to the 'AttendanceRecords' table.
    (session_id, occurrence_date, user_id) is unique.
    """
    record_id: UUID
    session_id: UUID
    occurrence_date: date
    user_id: str
    check_in_time: datetime
    user_location: Optional[GeoPoint] = None
    device_id: Optional[str] = None
    location_verified: Optional[bool] = Field(False, description="None on OnLeave records, where location is not checked.")
    is_late: bool = False
    late_by_minutes: Optional[int] = Field(None, ge=0)
    attendance_status: AttendanceStatus
    approved_by: Optional[str] = None


class LeaveRequest(BaseModel):
    """
    Represents a leave request, mapping to the 'LeaveRequests' table.
    """
    leave_id: UUID
    user_id: str
    organization_id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    dates: List[date] = Field(default_factory=list, description="Explicit, possibly non-consecutive days.")
    days_count: float
    reason: str
    status: LeaveStatus = LeaveStatus.PENDING
    approved_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime

    def covers(self, day: date) -> bool:
        # An explicit day list wins over the start/end span it is summarised by.
        if self.dates:
            return day in self.dates
        return self.start_date <= day <= self.end_date


class DeviceBinding(BaseModel):
    """Active user -> device association, mapping to the 'DeviceBindings' table."""
    user_id: str
    device_id: str
    bound_at: datetime


class OrganizationSettings(BaseModel):
    """Per-organization attendance rules, mapping to the 'OrganizationSettings' table."""
    organization_id: str
    late_attendance_limit: int = Field(30, ge=0, description="Minutes after start before a scan counts as late.")
    strict_attendance: bool = Field(False, description="Reject scans once the late limit has passed.")


class ClassBatch(BaseModel):
    """
    A named group of session templates, mapping to the 'ClassBatches' table.
    Reports can select every template of a batch at once.
    """
    batch_id: UUID
    organization_id: str
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    default_start_time: Optional[time] = Field(None, description="Suggested start for new sessions of the batch.")
    default_location: Optional[str] = None
    created_by: str
    created_at: datetime


class AuditAction(str, Enum):
    FORCE_ATTENDANCE_CORRECTION = "ForceAttendanceCorrection"
    DEVICE_RESET = "DeviceReset"
    LEAVE_REVIEW = "LeaveReview"
    CANCEL_SESSION = "CancelSession"


class AuditEntry(BaseModel):
    """A privileged action, mapping to the 'AuditLog' table. Rows are only ever appended."""
    entry_id: UUID
    organization_id: str
    action: AuditAction
    performed_by: str
    performer_role: Role
    target_user_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
