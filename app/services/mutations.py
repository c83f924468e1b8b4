"""
Mutation pipeline: domain write first, then one audit record.

    snapshot -> write (committed) -> diff -> append audit record

The audit append is always attempted after a successful write. If it fails,
the recorder logs it and the write stands.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional, TypeVar

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.audit import AuditRecorder, RequestMetadata
from app.core.database import utc_isoformat
from app.core.errors import NotFoundError
from app.core.store import DocumentStore
from app.models.audit import AuditAction, EntityType
from app.models.user import User

EntityT = TypeVar("EntityT")


def plain(value: Any) -> Any:
    """JSON-safe form of a field value for the changes map."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return utc_isoformat(value)
    return value


def snapshot(entity: Any, fields: Iterable[str]) -> dict[str, Any]:
    return {field: plain(getattr(entity, field)) for field in fields}


def diff_fields(entity: Any, updates: dict[str, Any], allowed: Iterable[str]) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Compare `updates` against the entity's current values.

    Returns (changes, previous_data), restricted to allowed fields whose
    value actually differs.
    """
    changes: dict[str, Any] = {}
    previous: dict[str, Any] = {}
    for field in allowed:
        if field not in updates:
            continue
        current = plain(getattr(entity, field))
        new = plain(updates[field])
        if new != current:
            changes[field] = new
            previous[field] = current
    return changes, previous


class MutationPipeline:
    """Audited writes for one entity type, on behalf of one actor."""

    def __init__(
        self,
        db: AsyncSession,
        entity_type: EntityType,
        actor: Optional[User],
        metadata: RequestMetadata,
    ):
        self.db = db
        self.entity_type = entity_type
        self.actor = actor
        self.metadata = metadata
        self.recorder = AuditRecorder(db)

    @property
    def actor_id(self) -> Optional[int]:
        return self.actor.id if self.actor is not None else None

    async def _audit(
        self,
        entity: Any,
        action: AuditAction,
        changes: dict[str, Any],
        previous: Optional[dict[str, Any]],
        notes: Optional[str],
    ) -> None:
        record = await self.recorder.record(
            entity_type=self.entity_type,
            entity_id=entity.id,
            action=action,
            changes=changes,
            previous_data=previous,
            actor=self.actor,
            metadata=self.metadata,
            default_notes=notes,
        )
        if record is None:
            # A failed append rolls the session back, which expires loaded rows
            for instance in (entity, self.actor):
                if instance is not None and instance in self.db and inspect(instance).persistent:
                    await self.db.refresh(instance)

    async def create(
        self,
        store: DocumentStore,
        fields: dict[str, Any],
        audited_fields: Iterable[str],
        notes: Optional[str] = None,
    ):
        entity = await store.create(**fields)
        await self._audit(entity, AuditAction.CREATE, snapshot(entity, audited_fields), None, notes)
        return entity

    async def update(
        self,
        store: DocumentStore,
        entity: EntityT,
        updates: dict[str, Any],
        allowed_fields: Iterable[str],
        notes: Optional[str] = None,
        action: AuditAction = AuditAction.UPDATE,
    ) -> tuple[EntityT, dict[str, Any]]:
        """
        Apply the allowed, actually-changed fields of `updates`.

        Returns the entity and the changes map; an empty map means nothing
        was written and nothing was audited.
        """
        changes, previous = diff_fields(entity, updates, allowed_fields)
        if not changes:
            return entity, changes

        fields = {field: updates[field] for field in changes}
        return await self.apply(store, entity, fields, action, changes, previous, notes), changes

    async def apply(
        self,
        store: DocumentStore,
        entity: EntityT,
        fields: dict[str, Any],
        action: AuditAction,
        changes: dict[str, Any],
        previous: Optional[dict[str, Any]] = None,
        notes: Optional[str] = None,
    ) -> EntityT:
        """Write `fields` and audit with an explicit changes map."""
        if hasattr(entity, "updated_by_id"):
            fields = {**fields, "updated_by_id": self.actor_id}

        updated = await store.find_by_id_and_update(entity.id, fields)
        if updated is None:
            raise NotFoundError(f"{self.entity_type.value.capitalize()} not found")

        await self._audit(updated, action, changes, previous, notes)
        return updated
