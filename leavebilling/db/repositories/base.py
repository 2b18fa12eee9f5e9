# leavebilling/db/repositories/base.py
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    """Shared lookups for a single mapped table"""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def get(self, id: Any) -> Optional[ModelType]:
        """Get by ID, refreshing any copy already in the session"""
        result = await self.session.execute(
            select(self.model)
            .where(self.model.id == id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def count(self, *criteria, model: Optional[Type[Any]] = None) -> int:
        """Count rows of ``model`` (default: this repository's model) matching ``criteria``"""
        target = model if model is not None else self.model
        result = await self.session.execute(
            select(func.count(target.id)).where(*criteria)
        )
        return result.scalar() or 0

    async def update(self, id: Any, values: dict) -> Optional[ModelType]:
        """Write ``values`` to one row, commit, and return the fresh row"""
        await self.session.execute(
            update(self.model)
            .where(self.model.id == id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return await self.get(id)
