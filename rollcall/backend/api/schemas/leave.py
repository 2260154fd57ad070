# rollcall/backend/api/schemas/leave.py
from pydantic import BaseModel, Field
from datetime import date
from typing import List, Optional

from ...models.db_models import LeaveStatus, LeaveType


class LeaveApplyRequest(BaseModel):
    leave_type: LeaveType
    start_date: date
    end_date: date
    dates: List[date] = Field(default_factory=list, description="Explicit non-consecutive days within the range.")
    reason: str = Field(..., min_length=3)


class LeaveReviewRequest(BaseModel):
    status: LeaveStatus = Field(..., description="Approved or Rejected.")
    rejection_reason: Optional[str] = None
