from pydantic import BaseModel, Field
from datetime import datetime
from uuid import UUID
from .db_models import User

class UserSessionRedis(BaseModel):
    """
    Represents a user's login session stored in Redis.
    """
    user_data: User = Field(..., description="The core user data from the database.")
    session_id: UUID = Field(..., description="Unique ID for this specific session.")
    session_start_time: datetime = Field(..., description="The time this session began.")
    session_end_time: datetime = Field(..., description="The time this session will expire.")
