# rollcall/backend/api/schemas/user.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from ...models.db_models import Role


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class UserResponse(BaseModel):
    user_id: str
    organization_id: str
    email: str
    full_name: str
    role: Role

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    token: Token
    user: UserResponse

# Internal representation of JWT data
class TokenData(BaseModel):
    sub: Optional[str] = None
