"""
Client endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.audit import RequestMetadata, history_payload, request_metadata
from app.auth.dependencies import require_role
from app.core.config import HISTORY_PAGE_LIMIT_MAX
from app.core.database import get_db
from app.models.user import User, UserRole
from app.schemas.client import ClientCreate, ClientUpdate
from app.schemas.common import SuccessResponse
from app.services import client_service

router = APIRouter()

ALL_ROLES = tuple(UserRole)

PERMISSIONS = {
    "create": (UserRole.ADMIN, UserRole.SUPERVISOR),
    "read": ALL_ROLES,
    "update": (UserRole.ADMIN, UserRole.SUPERVISOR),
    "delete": (UserRole.ADMIN,),
}


@router.get("", response_model=SuccessResponse)
async def list_clients(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=HISTORY_PAGE_LIMIT_MAX),
    active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=200),
    current_user: User = Depends(require_role(*PERMISSIONS["read"])),
    db: AsyncSession = Depends(get_db),
):
    clients, pagination = await client_service.list_clients(db, active, search, page, limit)
    return {
        "ok": True,
        "data": {
            "clients": [client.to_dict() for client in clients],
            "pagination": pagination.model_dump(),
        },
    }


@router.post("", response_model=SuccessResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    client_data: ClientCreate,
    current_user: User = Depends(require_role(*PERMISSIONS["create"])),
    db: AsyncSession = Depends(get_db),
    metadata: RequestMetadata = Depends(request_metadata),
):
    client = await client_service.create_client(db, client_data.model_dump(), current_user, metadata)
    return {"ok": True, "data": client.to_dict()}


@router.get("/{client_id}", response_model=SuccessResponse)
async def get_client(
    client_id: int,
    current_user: User = Depends(require_role(*PERMISSIONS["read"])),
    db: AsyncSession = Depends(get_db),
):
    client = await client_service.get_client(db, client_id)
    return {"ok": True, "data": client.to_dict()}


@router.put("/{client_id}", response_model=SuccessResponse)
async def update_client(
    client_id: int,
    client_data: ClientUpdate,
    current_user: User = Depends(require_role(*PERMISSIONS["update"])),
    db: AsyncSession = Depends(get_db),
    metadata: RequestMetadata = Depends(request_metadata),
):
    client = await client_service.update_client(
        db, client_id, client_data.model_dump(exclude_unset=True), current_user, metadata,
    )
    return {"ok": True, "data": client.to_dict()}


@router.delete("/{client_id}", response_model=SuccessResponse)
async def delete_client(
    client_id: int,
    current_user: User = Depends(require_role(*PERMISSIONS["delete"])),
    db: AsyncSession = Depends(get_db),
    metadata: RequestMetadata = Depends(request_metadata),
):
    """Soft delete: the client is deactivated, never removed."""
    await client_service.delete_client(db, client_id, current_user, metadata)
    return {"ok": True}


@router.get("/{client_id}/history", response_model=SuccessResponse)
async def get_client_history(
    client_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=HISTORY_PAGE_LIMIT_MAX),
    current_user: User = Depends(require_role(*PERMISSIONS["read"])),
    db: AsyncSession = Depends(get_db),
):
    entries, pagination = await client_service.get_client_history(db, client_id, page, limit)
    return {"ok": True, "data": history_payload(entries, pagination)}
