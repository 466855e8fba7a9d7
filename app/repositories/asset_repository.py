"""
VideoAsset repository - database operations for the asset store.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.generation_job import GenerationJob, JobStatus
from app.models.video_asset import AssetStatus, VideoAsset


class AssetRepository:
    """Repository for VideoAsset database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, asset_id: UUID) -> Optional[VideoAsset]:
        """Get an asset by ID."""
        result = await self.db.execute(
            select(VideoAsset).where(VideoAsset.id == asset_id)
        )
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Optional[VideoAsset]:
        """Get an asset by its normalized name."""
        result = await self.db.execute(
            select(VideoAsset).where(VideoAsset.name == name)
        )
        return result.scalar_one_or_none()

    async def create(self, name: str) -> VideoAsset:
        """Create a new pending asset."""
        asset = VideoAsset(name=name, status=AssetStatus.PENDING, telegram_file_id=None)
        self.db.add(asset)
        await self.db.flush()
        await self.db.refresh(asset)
        return asset

    async def list_assets(
        self,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[VideoAsset]:
        """List assets, most recently updated first."""
        query = select(VideoAsset)
        if status:
            query = query.where(VideoAsset.status == status)
        result = await self.db.execute(
            query.order_by(VideoAsset.updated_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all())

    async def reset_to_pending(self, asset_id: UUID) -> Optional[VideoAsset]:
        """Re-arm an asset for regeneration: pending, handle cleared."""
        return await self._set_state(asset_id, AssetStatus.PENDING, file_id=None)

    async def mark_generating(self, asset_id: UUID) -> Optional[VideoAsset]:
        """Flip an asset to generating. Returns None when the asset does not exist."""
        return await self._set_state(asset_id, AssetStatus.GENERATING, file_id=None)

    async def mark_available(
        self,
        asset_id: UUID,
        file_id: str,
        generated_at: Optional[datetime] = None,
    ) -> Optional[VideoAsset]:
        """Attach the delivery handle and mark the asset available."""
        values = {"status": AssetStatus.AVAILABLE, "telegram_file_id": file_id}
        if generated_at is not None:
            values["generated_at"] = generated_at
        result = await self.db.execute(
            update(VideoAsset)
            .where(VideoAsset.id == asset_id)
            .values(**values)
            .returning(VideoAsset)
            .execution_options(synchronize_session=False)
        )
        asset = result.scalar_one_or_none()
        await self.db.flush()
        return asset

    async def mark_failed(self, asset_id: UUID) -> Optional[VideoAsset]:
        """Mark an asset failed; the handle is cleared with it."""
        return await self._set_state(asset_id, AssetStatus.FAILED, file_id=None)

    async def _set_state(self, asset_id: UUID, status: str, file_id: Optional[str]) -> Optional[VideoAsset]:
        result = await self.db.execute(
            update(VideoAsset)
            .where(VideoAsset.id == asset_id)
            .values(status=status, telegram_file_id=file_id)
            .returning(VideoAsset)
            .execution_options(synchronize_session=False)
        )
        asset = result.scalar_one_or_none()
        await self.db.flush()
        return asset

    async def list_stalled(self, updated_before: datetime, limit: int = 100) -> List[VideoAsset]:
        """
        Assets stuck in pending/generating with no live job behind them.

        Nothing will ever move these forward on its own.
        """
        result = await self.db.execute(
            select(VideoAsset)
            .where(_stalled(updated_before))
            .order_by(VideoAsset.updated_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def fail_if_stalled(self, asset_id: UUID, updated_before: datetime) -> Optional[VideoAsset]:
        """Mark one asset failed only if it is still stalled; None otherwise."""
        result = await self.db.execute(
            update(VideoAsset)
            .where(VideoAsset.id == asset_id, _stalled(updated_before))
            .values(status=AssetStatus.FAILED, telegram_file_id=None)
            .returning(VideoAsset)
            .execution_options(synchronize_session=False)
        )
        asset = result.scalar_one_or_none()
        await self.db.flush()
        return asset


def _stalled(updated_before: datetime):
    live_job = exists().where(
        and_(
            GenerationJob.asset_id == VideoAsset.id,
            GenerationJob.status.in_(JobStatus.ACTIVE),
        )
    )
    return and_(
        VideoAsset.status.in_(AssetStatus.IN_FLIGHT),
        VideoAsset.updated_at < updated_before,
        ~live_job,
    )
