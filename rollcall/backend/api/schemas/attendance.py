# rollcall/backend/api/schemas/attendance.py
from pydantic import BaseModel, Field, ConfigDict
from uuid import UUID
from datetime import date, datetime
from typing import Optional

from ...models.db_models import AttendanceStatus, GeoPoint


class AttendanceRecordResponse(BaseModel):
    """One user's attendance for one occurrence."""
    record_id: UUID
    session_id: UUID
    occurrence_date: date
    user_id: str
    check_in_time: datetime
    user_location: Optional[GeoPoint] = None
    location_verified: Optional[bool] = None
    is_late: bool
    late_by_minutes: Optional[int] = Field(None, description="Whole minutes after the session start.")
    attendance_status: AttendanceStatus
    approved_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ForceMarkRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    status: AttendanceStatus = Field(..., description="ForcedPresent or ForcedAbsent.")
    occurrence_date: Optional[date] = Field(None, description="Defaults to today, or the start date of one-time sessions.")
