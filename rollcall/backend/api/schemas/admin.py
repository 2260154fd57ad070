# rollcall/backend/api/schemas/admin.py
from pydantic import BaseModel, Field
from typing import Optional


class OrganizationSettingsUpdate(BaseModel):
    late_attendance_limit: Optional[int] = Field(None, ge=0, description="Minutes after start before a scan counts as late.")
    strict_attendance: Optional[bool] = None
