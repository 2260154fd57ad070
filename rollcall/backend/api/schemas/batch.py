# rollcall/backend/api/schemas/batch.py
from pydantic import BaseModel
from uuid import UUID


class BatchDeleted(BaseModel):
    batch_id: UUID
    sessions_detached: int
