"""
Pydantic schemas for API request/response validation.

These schemas provide:
- Input validation with security constraints
- Output envelopes
- OpenAPI documentation generation
"""

from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
)
from app.schemas.user import (
    UserCreate,
    UserUpdate,
    PasswordChange,
    StatusChange,
)
from app.schemas.client import (
    ClientCreate,
    ClientUpdate,
)
from app.schemas.common import (
    PaginationMeta,
    SuccessResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    # Auth
    "LoginRequest",
    "LoginResponse",
    # User
    "UserCreate",
    "UserUpdate",
    "PasswordChange",
    "StatusChange",
    # Client
    "ClientCreate",
    "ClientUpdate",
    # Common
    "PaginationMeta",
    "SuccessResponse",
    "ErrorResponse",
    "HealthResponse",
]
