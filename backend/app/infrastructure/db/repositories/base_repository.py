"""
Base Repository for App Ideas Finder

Generic async repository implementing CRUD operations over one SQLModel
table. Concrete repositories add the queries their routes need.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Generic, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


ModelType = TypeVar("ModelType", bound=SQLModel)


def as_uuid(value: Any) -> UUID:
    """Coerce a string id to UUID; pass UUIDs through."""
    return value if isinstance(value, UUID) else UUID(str(value))


class BaseRepository(Generic[ModelType]):
    """
    Generic async repository with CRUD operations.

    Args:
        model: The SQLModel class to operate on
        session: Async database session (one per request)
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        return self._session

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """
        Run a block inside a nested transaction.

        A failure inside the block rolls back only the block's writes, so
        batch jobs can keep going after one bad record.
        """
        async with self._session.begin_nested():
            yield

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """
        Get a single record by its primary key.

        Args:
            id: UUID primary key (string accepted)

        Returns:
            Model instance or None if not found
        """
        try:
            key = as_uuid(id)
        except ValueError:
            return None
        return await self._session.get(self._model, key)

    async def get_all(
        self,
        skip: int = 0,
        limit: int = 100
    ) -> List[ModelType]:
        """Get records with pagination, newest first when the table has created_at."""
        stmt = select(self._model)
        if hasattr(self._model, "created_at"):
            stmt = stmt.order_by(self._model.created_at.desc())
        stmt = stmt.offset(skip).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def add(self, db_obj: ModelType) -> ModelType:
        """
        Persist a new record.

        Returns:
            The instance, refreshed with server-side defaults
        """
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def update_fields(self, db_obj: ModelType, values: dict) -> ModelType:
        """Apply ``values`` to a loaded record and flush."""
        for field, value in values.items():
            setattr(db_obj, field, value)
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def delete(self, id: Any) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if deleted, False if not found
        """
        db_obj = await self.get_by_id(id)
        if not db_obj:
            return False

        await self._session.delete(db_obj)
        await self._session.flush()
        return True

    async def count(self, *criteria) -> int:
        """Count records, optionally filtered by SQLAlchemy criteria."""
        stmt = select(func.count()).select_from(self._model)
        if criteria:
            stmt = stmt.where(*criteria)
        result = await self._session.execute(stmt)
        return result.scalar_one()
