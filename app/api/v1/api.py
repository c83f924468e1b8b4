"""
API Router configuration.

Aggregates all v1 API endpoints with proper tagging and prefixes.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    authn,
    clients,
    users,
)
from app.schemas.common import ErrorResponse

# Error envelopes every protected route can answer with
PROTECTED_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    401: {"model": ErrorResponse, "description": "Missing or invalid token"},
    403: {"model": ErrorResponse, "description": "Role not permitted"},
    404: {"model": ErrorResponse, "description": "Not found"},
}

api_router = APIRouter()

# Authentication (no auth required for login)
api_router.include_router(
    authn.router,
    prefix="/authn",
    tags=["authentication"],
    responses={
        401: {"model": ErrorResponse, "description": "Missing or invalid token"},
        403: {"model": ErrorResponse, "description": "Credentials rejected"},
    },
)

# User management
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"],
    responses={**PROTECTED_RESPONSES, 409: {"model": ErrorResponse, "description": "Username taken"}},
)

# Clients
api_router.include_router(
    clients.router,
    prefix="/clients",
    tags=["clients"],
    responses={**PROTECTED_RESPONSES, 409: {"model": ErrorResponse, "description": "Name or RFC taken"}},
)
