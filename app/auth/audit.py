"""
Audit trail recording and history queries.

The recorder appends one AuditLog per mutation. A failed append is logged
as AUDIT_WRITE_FAILED and swallowed: the domain write it describes has
already been committed and stays that way.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_client_ip, get_user_agent
from app.core.errors import AuditWriteError
from app.core.store import AppendOnlyStore
from app.models.audit import AuditAction, AuditLog, EntityType
from app.models.user import User
from app.schemas.common import PaginationMeta

logger = logging.getLogger(__name__)


class RequestMetadata(BaseModel):
    """Client context copied onto every audit record."""

    model_config = ConfigDict(frozen=True)

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request, notes: Optional[str] = None) -> "RequestMetadata":
        return cls(
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
            notes=notes,
        )

    def with_notes(self, notes: Optional[str]) -> "RequestMetadata":
        return self.model_copy(update={"notes": notes})


def request_metadata(request: Request) -> RequestMetadata:
    """Dependency form of RequestMetadata.from_request."""
    return RequestMetadata.from_request(request)


class AuditRecorder:
    """Appends and reads audit records through an append-only store."""

    def __init__(self, db: AsyncSession):
        self.store = AppendOnlyStore(db, AuditLog)

    async def record(
        self,
        entity_type: EntityType,
        entity_id: Any,
        action: AuditAction,
        changes: dict[str, Any],
        actor: Optional[User],
        metadata: RequestMetadata,
        previous_data: Optional[dict[str, Any]] = None,
        default_notes: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Append one record. Returns it, or None when the append failed.

        `created_at` is assigned here so records of one entity are ordered by
        the server clock, never by anything the client sent.
        """
        actor_id = actor.id if actor is not None else None
        try:
            return await self.store.append(
                entity_type=entity_type,
                entity_id=str(entity_id),
                action=action,
                changes=changes,
                previous_data=previous_data,
                performed_by=actor_id,
                ip_address=metadata.ip_address,
                user_agent=metadata.user_agent,
                notes=metadata.notes or default_notes,
                created_at=datetime.now(timezone.utc),
            )
        except Exception as exc:
            error = AuditWriteError(entity_type.value, str(entity_id), exc)
            logger.error(
                str(error),
                exc_info=exc,
                extra={"event": {
                    "action": "AUDIT_WRITE_FAILED",
                    "entity_type": entity_type.value,
                    "entity_id": str(entity_id),
                    "audit_action": action.value,
                    "performed_by": actor_id,
                }},
            )
            return None

    async def history(
        self,
        entity_type: EntityType,
        entity_id: Any,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[dict[str, Any]], PaginationMeta]:
        """
        Records for one entity, newest first, one page at a time.

        Each record carries its performer as {id, username, full_name}, or
        None when there was no actor or the user no longer exists.
        """
        filters = {"entity_type": entity_type, "entity_id": str(entity_id)}
        total = await self.store.count(filters)
        records = await self.store.find(
            filters,
            order_by=(AuditLog.created_at.desc(), AuditLog.id.desc()),
            offset=(page - 1) * limit,
            limit=limit,
        )
        performers = await self._performers(records)
        entries = [record.to_dict(performers.get(record.performed_by)) for record in records]
        return entries, PaginationMeta.create(total=total, page=page, limit=limit)

    async def _performers(self, records: list[AuditLog]) -> dict[int, User]:
        ids = {record.performed_by for record in records if record.performed_by is not None}
        if not ids:
            return {}
        result = await self.store.db.execute(select(User).where(User.id.in_(ids)))
        return {user.id: user for user in result.scalars().all()}


def history_payload(entries: list[dict[str, Any]], pagination: PaginationMeta) -> dict[str, Any]:
    return {"history": entries, "pagination": pagination.model_dump()}
