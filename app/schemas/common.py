"""
Common schemas used across the API.
"""

import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaginationMeta(BaseModel):
    """Paging block returned next to every list and history page."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(description="Total number of items matching filters")
    page: int = Field(description="Current page number")
    limit: int = Field(description="Items per page")
    pages: int = Field(description="Total number of pages")

    @classmethod
    def create(cls, total: int, page: int, limit: int) -> "PaginationMeta":
        """Create pagination metadata with calculated page count."""
        pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(total=total, page=page, limit=limit, pages=pages)


class SuccessResponse(BaseModel):
    """Success envelope: {"ok": true, "data": ...}."""

    ok: bool = True
    data: Optional[Any] = None


class ErrorBody(BaseModel):
    source: str = ""
    detail: str
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Error envelope rendered by the exception handlers."""

    ok: bool = False
    error: ErrorBody


class HealthResponse(BaseModel):
    """Health check payload."""

    status: str = "healthy"
    version: str
    environment: str
    database: str = "healthy"
