"""
Client management. Clients are never removed; delete clears `active`.
"""

import logging
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.audit import AuditRecorder, RequestMetadata
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.log import log_event
from app.core.store import DocumentStore
from app.models.audit import AuditAction, EntityType
from app.models.client import Client
from app.models.user import User
from app.schemas.common import PaginationMeta
from app.services.mutations import MutationPipeline

logger = logging.getLogger(__name__)

TEXT_DEFAULTS = ("legal_name", "contact_person", "email", "phone", "address", "notes")


def _pipeline(db: AsyncSession, actor: Optional[User], metadata: RequestMetadata) -> MutationPipeline:
    return MutationPipeline(db, EntityType.CLIENT, actor, metadata)


async def _ensure_unique(store: DocumentStore, field: str, value: Any, exclude_id: Optional[int] = None) -> None:
    if value is None:
        return
    existing = await store.find_one(**{field: value})
    if existing is not None and existing.id != exclude_id:
        raise ConflictError(f"A client with that {field} already exists", source=f"body/{field}")


async def get_client(db: AsyncSession, client_id: int) -> Client:
    client = await DocumentStore(db, Client).find_by_id(client_id)
    if client is None:
        raise NotFoundError("Client not found")
    return client


async def list_clients(
    db: AsyncSession,
    active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Client], PaginationMeta]:
    store = DocumentStore(db, Client)
    filters = {"active": active} if active is not None else {}
    where = []
    if search:
        pattern = f"%{search}%"
        where.append(or_(
            Client.name.ilike(pattern),
            Client.contact_person.ilike(pattern),
            Client.email.ilike(pattern),
            Client.phone.ilike(pattern),
            Client.address.ilike(pattern),
        ))

    total = await store.count(filters, where=where)
    clients = await store.find(
        filters,
        where=where,
        order_by=(Client.name.asc(),),
        offset=(page - 1) * limit,
        limit=limit,
    )
    return clients, PaginationMeta.create(total=total, page=page, limit=limit)


async def create_client(
    db: AsyncSession,
    data: dict[str, Any],
    actor: Optional[User],
    metadata: RequestMetadata,
) -> Client:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Incomplete client data", details=[{"field": "name", "message": "Field required"}])

    store = DocumentStore(db, Client)
    rfc = data.get("rfc") or None
    await _ensure_unique(store, "name", name)
    await _ensure_unique(store, "rfc", rfc)

    actor_id = actor.id if actor is not None else None
    fields: dict[str, Any] = {field: data.get(field) or "" for field in TEXT_DEFAULTS}
    fields.update(
        name=name,
        rfc=rfc,
        active=data["active"] if data.get("active") is not None else True,
        created_by_id=actor_id,
        updated_by_id=actor_id,
    )

    client = await _pipeline(db, actor, metadata).create(
        store, fields, Client.AUDITED_FIELDS, notes="Client created",
    )
    log_event(logger, logging.INFO, "CLIENT_CREATED", client_id=client.id, name=client.name, created_by=actor_id)
    return client


async def update_client(
    db: AsyncSession,
    client_id: int,
    data: dict[str, Any],
    actor: Optional[User],
    metadata: RequestMetadata,
) -> Client:
    """Apply the given fields. Nothing changed means nothing written or audited."""
    client = await get_client(db, client_id)
    store = DocumentStore(db, Client)

    updates = {key: value for key, value in data.items() if key in Client.AUDITED_FIELDS}
    if "name" in updates:
        updates["name"] = (updates["name"] or "").strip()
        if not updates["name"]:
            raise ValidationError("Client name cannot be empty", source="body/name")
        await _ensure_unique(store, "name", updates["name"], exclude_id=client.id)
    if "rfc" in updates:
        updates["rfc"] = updates["rfc"] or None
        await _ensure_unique(store, "rfc", updates["rfc"], exclude_id=client.id)

    updated, changes = await _pipeline(db, actor, metadata).update(
        store, client, updates, Client.AUDITED_FIELDS, notes="Client updated",
    )
    if changes:
        log_event(
            logger, logging.INFO, "CLIENT_UPDATED",
            client_id=updated.id,
            updated_by=actor.id if actor is not None else None,
            changes=changes,
        )
    return updated


async def delete_client(
    db: AsyncSession,
    client_id: int,
    actor: Optional[User],
    metadata: RequestMetadata,
) -> Client:
    client = await get_client(db, client_id)
    if not client.active:
        return client

    deleted = await _pipeline(db, actor, metadata).apply(
        DocumentStore(db, Client),
        client,
        {"active": False},
        AuditAction.DELETE,
        changes={"active": {"from": True, "to": False}},
        notes="Client deleted (soft delete)",
    )
    log_event(
        logger, logging.INFO, "CLIENT_DELETED",
        client_id=deleted.id,
        deleted_by=actor.id if actor is not None else None,
    )
    return deleted


async def get_client_history(
    db: AsyncSession,
    client_id: int,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[dict[str, Any]], PaginationMeta]:
    await get_client(db, client_id)
    return await AuditRecorder(db).history(EntityType.CLIENT, client_id, page=page, limit=limit)
