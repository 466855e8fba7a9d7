"""
SystemAsset repository - cached file ids of static media.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.system_asset import SystemAsset


class SystemAssetRepository:
    """CRUD helpers for SystemAsset."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_file_id(self, key: str) -> Optional[str]:
        result = await self.db.execute(
            select(SystemAsset.telegram_file_id).where(SystemAsset.key == key)
        )
        return result.scalar_one_or_none()

    async def set_file_id(self, key: str, file_id: str) -> None:
        stmt = insert(SystemAsset).values(key=key, telegram_file_id=file_id)
        stmt = stmt.on_conflict_do_update(
            index_elements=[SystemAsset.key],
            set_={"telegram_file_id": file_id, "updated_at": func.now()},
        )
        await self.db.execute(stmt)
        await self.db.flush()
