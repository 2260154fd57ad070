# rollcall/backend/api/schemas/report.py
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import date
from typing import List


class ReportRequest(BaseModel):
    session_ids: List[UUID] = Field(default_factory=list, description="Sessions to report on. With batch_ids also empty, every session of the organization.")
    batch_ids: List[UUID] = Field(default_factory=list, description="Adds every session of these batches.")
    start_date: date
    end_date: date
