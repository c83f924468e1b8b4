"""
User management endpoints.

Writes require the admin role; reads are open to admins, supervisors and
technicians.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.audit import RequestMetadata, history_payload, request_metadata
from app.auth.dependencies import require_role
from app.core.config import HISTORY_PAGE_LIMIT_MAX
from app.core.database import get_db
from app.models.user import User, UserRole, UserStatus
from app.schemas.common import SuccessResponse
from app.schemas.user import PasswordChange, StatusChange, UserCreate, UserUpdate
from app.services import user_service

router = APIRouter()

PERMISSIONS = {
    "create": (UserRole.ADMIN,),
    "read": (UserRole.ADMIN, UserRole.SUPERVISOR, UserRole.TECHNICIAN),
    "update": (UserRole.ADMIN,),
    "delete": (UserRole.ADMIN,),
}


@router.get("", response_model=SuccessResponse)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=HISTORY_PAGE_LIMIT_MAX),
    role: Optional[UserRole] = None,
    user_status: Optional[UserStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=200),
    current_user: User = Depends(require_role(*PERMISSIONS["read"])),
    db: AsyncSession = Depends(get_db),
):
    """List users with pagination and filtering. Deleted users are excluded."""
    users, pagination = await user_service.list_users(db, role, user_status, search, page, limit)
    return {
        "ok": True,
        "data": {
            "users": [user.to_public() for user in users],
            "pagination": pagination.model_dump(),
        },
    }


@router.post("", response_model=SuccessResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    current_user: User = Depends(require_role(*PERMISSIONS["create"])),
    db: AsyncSession = Depends(get_db),
    metadata: RequestMetadata = Depends(request_metadata),
):
    user = await user_service.create_user(
        db,
        user_data.model_dump(exclude={"notes"}),
        current_user,
        metadata.with_notes(user_data.notes),
    )
    return {"ok": True, "data": user.to_public()}


@router.get("/{user_id}", response_model=SuccessResponse)
async def get_user(
    user_id: int,
    current_user: User = Depends(require_role(*PERMISSIONS["read"])),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.get_user(db, user_id)
    return {"ok": True, "data": user.to_public()}


@router.put("/{user_id}", response_model=SuccessResponse)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    current_user: User = Depends(require_role(*PERMISSIONS["update"])),
    db: AsyncSession = Depends(get_db),
    metadata: RequestMetadata = Depends(request_metadata),
):
    """
    Update username, full name, role or status.

    Any other key in the body is ignored (and logged).
    """
    data = {**user_data.model_dump(exclude_unset=True, exclude={"notes"}), **(user_data.model_extra or {})}
    user = await user_service.update_user(
        db,
        user_id,
        data,
        current_user,
        metadata.with_notes(user_data.notes),
    )
    return {"ok": True, "data": user.to_public()}


@router.patch("/{user_id}/password", response_model=SuccessResponse)
async def change_password(
    user_id: int,
    password_data: PasswordChange,
    current_user: User = Depends(require_role(*PERMISSIONS["update"])),
    db: AsyncSession = Depends(get_db),
    metadata: RequestMetadata = Depends(request_metadata),
):
    """Set a new password. The response never echoes password material."""
    await user_service.change_password(
        db, user_id, password_data.password, current_user, metadata.with_notes(password_data.notes),
    )
    return {"ok": True}


@router.patch("/{user_id}/status", response_model=SuccessResponse)
async def change_status(
    user_id: int,
    status_data: StatusChange,
    current_user: User = Depends(require_role(*PERMISSIONS["update"])),
    db: AsyncSession = Depends(get_db),
    metadata: RequestMetadata = Depends(request_metadata),
):
    user = await user_service.change_user_status(
        db, user_id, status_data.status, current_user, metadata.with_notes(status_data.notes),
    )
    return {"ok": True, "data": user.to_public()}


@router.delete("/{user_id}", response_model=SuccessResponse)
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_role(*PERMISSIONS["delete"])),
    db: AsyncSession = Depends(get_db),
    metadata: RequestMetadata = Depends(request_metadata),
):
    """Soft-delete a user (status becomes "deleted")."""
    user = await user_service.delete_user(db, user_id, current_user, metadata)
    return {"ok": True, "data": user.to_public()}


@router.get("/{user_id}/history", response_model=SuccessResponse)
async def get_user_history(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=HISTORY_PAGE_LIMIT_MAX),
    current_user: User = Depends(require_role(*PERMISSIONS["read"])),
    db: AsyncSession = Depends(get_db),
):
    """Audit records for one user, newest first."""
    entries, pagination = await user_service.get_user_history(db, user_id, page, limit)
    return {"ok": True, "data": history_payload(entries, pagination)}
