from __future__ import annotations

from typing import Optional

from pydantic import EmailStr, Field, field_validator

from lead_crm_svc.models.enums import UserRole
from lead_crm_svc.schemas.common import CamelModel
from lead_crm_svc.schemas.user import UserResponse


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.lower()


class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    role: UserRole = UserRole.User

    @field_validator("email")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.lower()


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    # empty string clears the stored phone
    phone: Optional[str] = None


class AuthData(CamelModel):
    user: UserResponse
    token: str
    token_type: str = "bearer"
