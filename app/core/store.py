"""
Document-style data access over SQLAlchemy async sessions.

Services talk to the database through these wrappers instead of building
queries inline, which keeps the contract small:

    find_one / find_by_id / find / count / create /
    find_by_id_and_update / find_by_id_and_delete

Audit records go through AppendOnlyStore, which has no update or delete.
"""

from typing import Any, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from app.core.database import Base
from app.core.errors import ConflictError

ModelT = TypeVar("ModelT", bound=Base)


class _ReadableStore(Generic[ModelT]):
    def __init__(self, db: AsyncSession, model: Type[ModelT]):
        self.db = db
        self.model = model

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    def _filtered(self, query: Select, filters: Optional[dict[str, Any]], where: Sequence[ColumnElement]) -> Select:
        for field, value in (filters or {}).items():
            query = query.where(getattr(self.model, field) == value)
        for clause in where:
            query = query.where(clause)
        return query

    async def find_one(self, **filters: Any) -> Optional[ModelT]:
        query = self._filtered(select(self.model), filters, ()).limit(1)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_by_id(self, id_value: Any) -> Optional[ModelT]:
        return await self.db.get(self.model, id_value)

    async def find(
        self,
        filters: Optional[dict[str, Any]] = None,
        *,
        where: Sequence[ColumnElement] = (),
        order_by: Sequence[ColumnElement] = (),
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[ModelT]:
        query = self._filtered(select(self.model), filters, where)
        if order_by:
            query = query.order_by(*order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count(self, filters: Optional[dict[str, Any]] = None, *, where: Sequence[ColumnElement] = ()) -> int:
        query = self._filtered(select(func.count()).select_from(self.model), filters, where)
        result = await self.db.execute(query)
        return result.scalar_one()


class DocumentStore(_ReadableStore[ModelT]):
    """Full CRUD for a mutable entity. Each write commits its own unit of work."""

    async def _commit_unique(self) -> None:
        """Commit; a unique constraint lost to a concurrent writer is a conflict."""
        try:
            await self._commit()
        except IntegrityError as exc:
            raise ConflictError(f"{self.model.__name__} conflicts with an existing record") from exc

    async def create(self, **fields: Any) -> ModelT:
        instance = self.model(**fields)
        self.db.add(instance)
        await self._commit_unique()
        await self.db.refresh(instance)
        return instance

    async def find_by_id_and_update(self, id_value: Any, fields: dict[str, Any]) -> Optional[ModelT]:
        instance = await self.find_by_id(id_value)
        if instance is None:
            return None
        for field, value in fields.items():
            setattr(instance, field, value)
        await self._commit_unique()
        await self.db.refresh(instance)
        return instance

    async def find_by_id_and_delete(self, id_value: Any) -> Optional[ModelT]:
        instance = await self.find_by_id(id_value)
        if instance is None:
            return None
        await self.db.delete(instance)
        await self._commit()
        return instance


class AppendOnlyStore(_ReadableStore[ModelT]):
    """Create and read only."""

    async def append(self, **fields: Any) -> ModelT:
        instance = self.model(**fields)
        self.db.add(instance)
        await self._commit()
        await self.db.refresh(instance)
        return instance
