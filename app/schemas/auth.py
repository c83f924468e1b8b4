"""
Authentication-related schemas.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class LoginRequest(BaseModel):
    """Login request with username and password."""

    username: str = Field(min_length=1, max_length=100, description="Username (case-insensitive)")
    password: str = Field(min_length=1, max_length=128, description="User password")

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, v: str) -> str:
        return v.lower().strip()


class LoginData(BaseModel):
    """Payload returned on successful login."""

    accessToken: str = Field(description="Signed access token")
    exp: int = Field(description="Absolute access token expiry (epoch seconds)")
    refreshToken: str = Field(description="Signed refresh token")
    user: str = Field(description="Opaque value with no authorization meaning")
    dataUser: dict[str, Any] = Field(description="Public profile of the authenticated user")


class LoginResponse(BaseModel):
    ok: bool = True
    data: LoginData


class ProfileResponse(BaseModel):
    ok: bool = True
    data: Optional[dict[str, Any]] = None
