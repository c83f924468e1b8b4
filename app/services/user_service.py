"""
User management: every write goes through the MutationPipeline so it leaves
exactly one audit record behind.
"""

import logging
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.auth.audit import AuditRecorder, RequestMetadata
from app.auth.password import ensure_password_policy, hash_password, verify_password
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.log import log_event
from app.core.store import DocumentStore
from app.models.audit import AuditAction, EntityType
from app.models.user import User, UserRole, UserStatus
from app.schemas.common import PaginationMeta
from app.services.mutations import MutationPipeline

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("username", "full_name", "role", "status")
CREATE_AUDITED_FIELDS = ("username", "full_name", "role", "status")


def _pipeline(db: AsyncSession, actor: Optional[User], metadata: RequestMetadata) -> MutationPipeline:
    return MutationPipeline(db, EntityType.USER, actor, metadata)


def _ensure_not_self(actor: Optional[User], user_id: int, new_status: UserStatus, source: str) -> None:
    """An actor may not lock themselves out by deactivating or deleting their own account."""
    if actor is None or actor.id != user_id or new_status == UserStatus.ACTIVE:
        return
    if new_status == UserStatus.DELETED:
        raise ValidationError("You cannot delete your own account", source=source)
    raise ValidationError("You cannot deactivate your own account", source=source)


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await DocumentStore(db, User).find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def list_users(
    db: AsyncSession,
    role: Optional[UserRole] = None,
    status: Optional[UserStatus] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[User], PaginationMeta]:
    """Users matching the filters, newest first. Deleted users are never listed."""
    store = DocumentStore(db, User)
    filters: dict[str, Any] = {}
    if role is not None:
        filters["role"] = role

    where = []
    if status is not None:
        filters["status"] = status
    else:
        where.append(User.status != UserStatus.DELETED)
    if search:
        pattern = f"%{search.lower()}%"
        where.append(or_(User.username.ilike(pattern), User.full_name.ilike(pattern)))

    total = await store.count(filters, where=where)
    users = await store.find(
        filters,
        where=where,
        order_by=(User.created_at.desc(), User.id.desc()),
        offset=(page - 1) * limit,
        limit=limit,
    )
    return users, PaginationMeta.create(total=total, page=page, limit=limit)


async def create_user(
    db: AsyncSession,
    data: dict[str, Any],
    actor: Optional[User],
    metadata: RequestMetadata,
) -> User:
    """
    Create a user.

    Raises:
        ValidationError: missing username/full name, or weak password
        ConflictError: username already taken
    """
    username = (data.get("username") or "").strip().lower()
    full_name = (data.get("full_name") or "").strip()
    password = data.get("password")

    missing = [field for field, value in (("username", username), ("full_name", full_name), ("password", password)) if not value]
    if missing:
        raise ValidationError("Incomplete user data", details=[{"field": f, "message": "Field required"} for f in missing])
    ensure_password_policy(password)

    store = DocumentStore(db, User)
    if await store.find_one(username=username) is not None:
        raise ConflictError("Username already exists", source="body/username")

    password_hash = await run_in_threadpool(hash_password, password)
    actor_id = actor.id if actor is not None else None

    user = await _pipeline(db, actor, metadata).create(
        store,
        {
            "username": username,
            "full_name": full_name,
            "password_hash": password_hash,
            "role": data.get("role") or UserRole.TECHNICIAN,
            "status": data.get("status") or UserStatus.ACTIVE,
            "created_by_id": actor_id,
            "updated_by_id": actor_id,
        },
        CREATE_AUDITED_FIELDS,
        notes="User created",
    )

    log_event(
        logger, logging.INFO, "USER_CREATED",
        user_id=user.id,
        username=user.username,
        role=user.role.value,
        created_by=actor_id if actor_id is not None else "system",
    )
    return user


async def update_user(
    db: AsyncSession,
    user_id: int,
    data: dict[str, Any],
    actor: Optional[User],
    metadata: RequestMetadata,
) -> User:
    """
    Update profile fields. Only username, full_name, role and status are
    writable here; anything else is ignored and reported as a warning.
    """
    user = await get_user(db, user_id)

    ignored = sorted(key for key in data if key not in UPDATABLE_FIELDS and key != "notes")
    if ignored:
        log_event(
            logger, logging.WARNING, "INVALID_UPDATE_FIELDS",
            user_id=user_id,
            fields=ignored,
            request_data=data,
        )

    updates = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS and value is not None}
    if "full_name" in updates:
        updates["full_name"] = updates["full_name"].strip()
        if not updates["full_name"]:
            raise ValidationError("Full name cannot be empty", source="body/full_name")
    if "status" in updates:
        _ensure_not_self(actor, user_id, UserStatus(updates["status"]), source="body/status")
    if "username" in updates:
        updates["username"] = updates["username"].strip().lower()
        if not updates["username"]:
            raise ValidationError("Username cannot be empty", source="body/username")
        if updates["username"] != user.username:
            store = DocumentStore(db, User)
            if await store.find_one(username=updates["username"]) is not None:
                raise ConflictError("Username already in use", source="body/username")

    updated, changes = await _pipeline(db, actor, metadata).update(
        DocumentStore(db, User),
        user,
        updates,
        UPDATABLE_FIELDS,
        notes="User updated",
    )
    if not changes:
        log_event(logger, logging.INFO, "USER_UPDATE_NO_CHANGES", user_id=user_id)
        return updated

    log_event(
        logger, logging.INFO, "USER_UPDATED",
        user_id=updated.id,
        username=updated.username,
        updated_by=actor.id if actor is not None else "system",
        changes=changes,
    )
    return updated


async def change_password(
    db: AsyncSession,
    user_id: int,
    new_password: str,
    actor: Optional[User],
    metadata: RequestMetadata,
) -> User:
    """
    Replace the password digest. The audit record only says that the
    password changed; no password material is ever recorded.
    """
    ensure_password_policy(new_password)
    user = await get_user(db, user_id)

    if await run_in_threadpool(verify_password, new_password, user.password_hash):
        raise ValidationError("The new password must be different from the current one", source="body/password")

    password_hash = await run_in_threadpool(hash_password, new_password)
    updated = await _pipeline(db, actor, metadata).apply(
        DocumentStore(db, User),
        user,
        {"password_hash": password_hash},
        AuditAction.PASSWORD_CHANGE,
        changes={"password_changed": True},
        notes="Password changed",
    )

    log_event(
        logger, logging.INFO, "PASSWORD_CHANGED",
        user_id=updated.id,
        changed_by=actor.id if actor is not None else "system",
    )
    return updated


async def change_user_status(
    db: AsyncSession,
    user_id: int,
    new_status: UserStatus,
    actor: Optional[User],
    metadata: RequestMetadata,
) -> User:
    """Move a user to `new_status`. Setting the current status again is a no-op."""
    user = await get_user(db, user_id)
    _ensure_not_self(actor, user_id, new_status, source="body/status")
    previous_status = user.status
    if previous_status == new_status:
        return user

    updated = await _pipeline(db, actor, metadata).apply(
        DocumentStore(db, User),
        user,
        {"status": new_status},
        AuditAction.STATUS_CHANGE,
        changes={"status": new_status.value},
        previous={"status": previous_status.value},
        notes=f"Status changed to {new_status.value}",
    )

    log_event(
        logger, logging.INFO, "USER_STATUS_CHANGED",
        user_id=updated.id,
        previous_status=previous_status.value,
        new_status=new_status.value,
        changed_by=actor.id if actor is not None else "system",
    )
    return updated


async def delete_user(
    db: AsyncSession,
    user_id: int,
    actor: Optional[User],
    metadata: RequestMetadata,
) -> User:
    """Soft delete: the user is moved to the "deleted" status and kept."""
    _ensure_not_self(actor, user_id, UserStatus.DELETED, source="params/id")

    user = await change_user_status(
        db, user_id, UserStatus.DELETED, actor,
        metadata.with_notes(metadata.notes or "User deleted"),
    )

    log_event(
        logger, logging.INFO, "USER_DELETED",
        user_id=user_id,
        deleted_by=actor.id if actor is not None else "system",
    )
    return user


async def get_user_history(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[dict[str, Any]], PaginationMeta]:
    await get_user(db, user_id)
    return await AuditRecorder(db).history(EntityType.USER, user_id, page=page, limit=limit)
