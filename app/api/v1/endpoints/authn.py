"""
Authentication endpoints.

Provides:
- Login (username/password -> access token, refresh token, decoy value)
- Current principal profile
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.audit import RequestMetadata, request_metadata
from app.auth.dependencies import get_token_issuer, require_role
from app.auth.jwt import TokenIssuer
from app.core.database import get_db
from app.models.user import User
from app.schemas.auth import LoginRequest, LoginResponse, ProfileResponse
from app.services import auth_service

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
    metadata: RequestMetadata = Depends(request_metadata),
):
    """
    Authenticate with username and password.

    Every credential failure returns the same 403 body, whatever the cause.
    """
    data = await auth_service.login(db, issuer, login_data.username, login_data.password, metadata)
    return {"ok": True, "data": data}


@router.get("/me", response_model=ProfileResponse)
async def me(current_user: User = Depends(require_role())):
    """Profile of the authenticated principal."""
    return {"ok": True, "data": current_user.to_public()}
