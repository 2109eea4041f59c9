"""Base repository with common database operations."""

from datetime import datetime
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Common operations for ORM models keyed by a string id.

    Writes only flush; committing is left to the caller so several repository
    calls can share one transaction.
    """

    def __init__(self, model: Type[T], session: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy ORM model class
            session: Database session
        """
        self.model = model
        self.session = session

    async def get(self, id: str) -> Optional[T]:
        """
        Get a single record by ID.

        Args:
            id: Primary key value

        Returns:
            Model instance or None
        """
        return await self.session.get(self.model, id)

    async def create(self, instance: T) -> T:
        """
        Add a new record and load its database defaults.

        Args:
            instance: Model instance to create

        Returns:
            Created instance
        """
        self.session.add(instance)
        return await self.save(instance)

    async def save(self, instance: T) -> T:
        """Flush pending changes to ``instance`` and reload it."""
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def modify(self, id: str, **values: Any) -> Optional[T]:
        """
        Set attributes on a record and stamp ``updated_at`` when the model has one.

        Args:
            id: Primary key value
            **values: Column values to assign

        Returns:
            Updated instance or None if not found
        """
        instance = await self.get(id)
        if instance is None:
            return None

        for name, value in values.items():
            setattr(instance, name, value)
        if hasattr(instance, "updated_at"):
            instance.updated_at = datetime.utcnow()
        return await self.save(instance)

    async def update_where(self, id: str, *criteria, **values: Any) -> int:
        """
        Update a record in one statement, only while it matches all ``criteria``.

        Args:
            id: Primary key value
            *criteria: Extra conditions the row must satisfy
            **values: Column values to assign

        Returns:
            Number of rows updated (0 or 1)
        """
        if hasattr(self.model, "updated_at"):
            values.setdefault("updated_at", datetime.utcnow())
        result = await self.session.execute(
            update(self.model)
            .where(self.model.id == id, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return result.rowcount or 0

    async def count_where(self, *criteria) -> int:
        """Count records matching all ``criteria``."""
        result = await self.session.execute(
            select(func.count()).select_from(self.model).where(*criteria)
        )
        return int(result.scalar_one())

    async def delete_where(self, *criteria) -> int:
        """
        Bulk delete records matching all ``criteria``.

        Returns:
            Number of rows deleted
        """
        result = await self.session.execute(delete(self.model).where(*criteria))
        await self.session.flush()
        return result.rowcount or 0

    async def delete_by_id(self, id: str) -> bool:
        """
        Delete a record by ID.

        Args:
            id: Primary key value

        Returns:
            True if deleted, False if not found
        """
        instance = await self.get(id)
        if instance is None:
            return False
        await self.session.delete(instance)
        await self.session.flush()
        return True
