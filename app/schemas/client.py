"""
Client schemas.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ClientBase(BaseModel):
    legal_name: Optional[str] = Field(default=None, max_length=255)
    rfc: Optional[str] = Field(default=None, max_length=20, description="Tax identifier")
    contact_person: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = None
    notes: Optional[str] = None
    active: Optional[bool] = None

    @field_validator("rfc")
    @classmethod
    def uppercase_rfc(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip().upper() or None


class ClientCreate(ClientBase):
    name: str = Field(min_length=1, max_length=255)


class ClientUpdate(ClientBase):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
