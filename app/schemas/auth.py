from datetime import datetime
from typing import Optional, Literal, List

from pydantic import BaseModel, EmailStr, Field, model_validator


# Role type
RoleType = Literal["Administrator", "Director", "TeamLeader", "Employee"]


# Request schemas
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    confirm_password: str
    full_name: str = Field(..., min_length=1, max_length=200)
    employee_code: Optional[str] = Field(None, max_length=50)
    role: RoleType

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    email: EmailStr
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6, max_length=128)
    confirm_new_password: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_new_password:
            raise ValueError("Passwords do not match")
        return self


# Response schemas
class UserInfo(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    employee_code: Optional[str] = None
    roles: List[str] = []
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    success: bool = True
    message: str
    token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: Optional[datetime] = None
    user: Optional[UserInfo] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class RolesResponse(BaseModel):
    roles: List[str]
