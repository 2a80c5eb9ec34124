"""
Base repository.

Generic CRUD operations for all repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic CRUD operations.

    Provides async database operations for any SQLAlchemy model.

    Type Parameters:
        ModelType: SQLAlchemy model class

    Example:
        class RankDefinitionRepository(BaseRepository[RankDefinition]):
            def __init__(self, session: AsyncSession):
                super().__init__(RankDefinition, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: int) -> ModelType | None:
        """
        Get entity by primary key.

        Args:
            id: Primary key value

        Returns:
            Entity or None if not found
        """
        return await self.session.get(self.model, id)

    async def get_by(
        self, **filters: Any
    ) -> ModelType | None:
        """
        Get single entity by filters.

        Args:
            **filters: Column filters

        Returns:
            First matching entity or None
        """
        stmt = select(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **data: Any) -> ModelType:
        """
        Create new entity.

        Args:
            **data: Entity data

        Returns:
            Created entity
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def bulk_create(
        self, items: list[dict[str, Any]]
    ) -> int:
        """
        Insert multiple rows in one statement.

        Args:
            items: List of entity data dicts

        Returns:
            Number of rows inserted
        """
        if not items:
            return 0

        await self.session.execute(insert(self.model).values(items))
        return len(items)

    async def delete_where(self, *conditions: ColumnElement[bool]) -> int:
        """
        Delete rows matching SQL conditions.

        Args:
            *conditions: WHERE clauses (ANDed)

        Returns:
            Number of rows deleted
        """
        stmt = delete(self.model).where(*conditions)
        result = await self.session.execute(stmt)
        return result.rowcount or 0
