"""
Base repository class with common operations.
Repositories handle database access using async SQLAlchemy sessions.
All lookups are scoped to an organization when one is given.
"""

from typing import Generic, TypeVar, Type, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ledgercrm.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with common create/read operations."""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def create(self, **kwargs) -> ModelType:
        """
        Create a new record.

        Args:
            **kwargs: Model attributes

        Returns:
            Created model instance
        """
        instance = self.model(**kwargs)
        return await self.add(instance)

    async def add(self, instance: ModelType) -> ModelType:
        """Add an already-built instance and flush it. Column defaults are applied client-side."""
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def get(self, id: UUID, organization_id: Optional[UUID] = None) -> Optional[ModelType]:
        """
        Get a record by ID.

        Args:
            id: Record ID
            organization_id: When given, records of other organizations are invisible

        Returns:
            Model instance or None
        """
        query = select(self.model).where(self.model.id == id)
        if organization_id is not None:
            query = query.where(self.model.organization_id == organization_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()
