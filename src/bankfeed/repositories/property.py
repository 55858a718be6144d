"""Property repository."""
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.models.property import Property
from bankfeed.repositories.base import BaseRepository


class PropertyRepository(BaseRepository[Property]):
    def __init__(self, db: AsyncSession):
        super().__init__(db, Property)

    async def exists(self, property_id: UUID) -> bool:
        result = await self.db.execute(select(exists().where(Property.id == property_id)))
        return bool(result.scalar())
