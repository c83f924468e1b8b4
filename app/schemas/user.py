"""
User-related schemas.

Password strength is checked by the service layer (ensure_password_policy)
so that a weak password surfaces as a ValidationError with the policy
issues listed, both at creation and at password change.
"""

from typing import Optional
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.user import UserRole, UserStatus


def _sanitize_name(v: str) -> str:
    # Remove potentially dangerous characters
    return re.sub(r'[<>"\';\\]', '', v).strip()


class UserCreate(BaseModel):
    """Schema for creating a new user."""

    username: str = Field(min_length=1, max_length=100, description="Unique username")
    full_name: str = Field(min_length=1, max_length=255, description="User's full name")
    password: str = Field(max_length=128, description="Initial password")
    role: UserRole = Field(default=UserRole.TECHNICIAN, description="User's role for access control")
    status: UserStatus = Field(default=UserStatus.ACTIVE)
    notes: Optional[str] = Field(default=None, max_length=500, description="Note stored on the audit record")

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, v: str) -> str:
        return v.lower().strip()

    @field_validator("full_name")
    @classmethod
    def sanitize_name(cls, v: str) -> str:
        return _sanitize_name(v)


class UserUpdate(BaseModel):
    """
    Schema for updating a user.

    Unknown keys are kept so the service can report them before ignoring
    them.
    """

    model_config = ConfigDict(extra="allow")

    username: Optional[str] = Field(default=None, min_length=1, max_length=100)
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.lower().strip()

    @field_validator("full_name")
    @classmethod
    def sanitize_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return _sanitize_name(v)


class PasswordChange(BaseModel):
    """Request to set a user's password."""

    password: str = Field(max_length=128)
    notes: Optional[str] = Field(default=None, max_length=500)


class StatusChange(BaseModel):
    status: UserStatus
    notes: Optional[str] = Field(default=None, max_length=500)
