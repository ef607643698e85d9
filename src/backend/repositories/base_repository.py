"""
Base repository with generic data access helpers.

Repositories never commit: every write is flushed into the caller's
transaction, which the operation boundary commits or rolls back as a whole.
"""
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository providing common operations.

    Usage:
        class IssueRepository(BaseRepository[Issue]):
            model = Issue
    """

    model: Type[ModelType] = None

    @classmethod
    async def find_by_id(
        cls,
        db: AsyncSession,
        id_value: Any,
        *,
        for_update: bool = False,
    ) -> Optional[ModelType]:
        """
        Find a single record by ID.

        Args:
            db: Database session
            id_value: The ID value to search for
            for_update: Lock the row for the rest of the transaction

        Returns:
            Model instance or None if not found
        """
        stmt = select(cls.model).where(cls.model.id == id_value)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)

        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @classmethod
    async def add(cls, db: AsyncSession, db_obj: ModelType) -> ModelType:
        """Add an instance and flush so generated keys are available."""
        db.add(db_obj)
        await db.flush()
        return db_obj

    @classmethod
    async def create(cls, db: AsyncSession, *, obj_in: Dict[str, Any]) -> ModelType:
        """Create a new record from a dictionary of field values."""
        return await cls.add(db, cls.model(**obj_in))
