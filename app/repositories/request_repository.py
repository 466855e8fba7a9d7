"""
UserRequest repository - database operations for the request ledger.
"""

from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user_request import RequestStatus, UserRequest
from app.models.video_asset import AssetStatus, VideoAsset


class RequestRepository:
    """Repository for UserRequest database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: int,
        asset_id: UUID,
        status: str,
        child_age: Optional[int] = None,
    ) -> UserRequest:
        """Create a ledger entry."""
        request = UserRequest(
            user_id=user_id,
            asset_id=asset_id,
            status=status,
            child_age=child_age,
        )
        self.db.add(request)
        await self.db.flush()
        await self.db.refresh(request)
        return request

    async def list_for_asset(self, asset_id: UUID, status: Optional[str] = None) -> List[UserRequest]:
        """List requests of an asset in creation order."""
        query = select(UserRequest).where(UserRequest.asset_id == asset_id)
        if status:
            query = query.where(UserRequest.status == status)
        result = await self.db.execute(
            query.order_by(UserRequest.created_at.asc(), UserRequest.id.asc())
        )
        return list(result.scalars().all())

    async def list_pending(self, asset_id: UUID) -> List[UserRequest]:
        """Fresh read of every pending request of an asset, oldest first."""
        return await self.list_for_asset(asset_id, status=RequestStatus.PENDING)

    async def mark_completed(self, asset_id: UUID, request_ids: Sequence[UUID]) -> int:
        """
        Batch-complete the given requests of one asset.

        Scoped by asset and by pending status so a request can never be
        completed twice or completed against another asset.
        """
        if not request_ids:
            return 0
        result = await self.db.execute(
            update(UserRequest)
            .where(
                UserRequest.asset_id == asset_id,
                UserRequest.id.in_(list(request_ids)),
                UserRequest.status == RequestStatus.PENDING,
            )
            .values(status=RequestStatus.COMPLETED)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return int(result.rowcount or 0)

    async def fail_pending(self, asset_id: UUID) -> List[int]:
        """Mark every pending request of an asset failed; returns affected user ids."""
        result = await self.db.execute(
            update(UserRequest)
            .where(
                UserRequest.asset_id == asset_id,
                UserRequest.status == RequestStatus.PENDING,
            )
            .values(status=RequestStatus.FAILED)
            .returning(UserRequest.user_id)
            .execution_options(synchronize_session=False)
        )
        user_ids = [row[0] for row in result.all()]
        await self.db.flush()
        return user_ids

    async def reopen_failed(self, asset_id: UUID, failed_since: datetime) -> int:
        """
        Return the requests failed together with the asset to pending.

        The asset and its pending requests are failed in one transaction, so
        they share updated_at; requests failed in an earlier cycle are older
        and stay failed.
        """
        result = await self.db.execute(
            update(UserRequest)
            .where(
                UserRequest.asset_id == asset_id,
                UserRequest.status == RequestStatus.FAILED,
                UserRequest.updated_at >= failed_since,
            )
            .values(status=RequestStatus.PENDING)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()
        return int(result.rowcount or 0)

    async def list_undelivered_for_available(
        self,
        created_before: datetime,
        limit: int = 100,
    ) -> List[UserRequest]:
        """Pending requests whose asset already has a handle (a fan-out delivery was missed)."""
        result = await self.db.execute(
            select(UserRequest)
            .join(VideoAsset, VideoAsset.id == UserRequest.asset_id)
            .where(
                UserRequest.status == RequestStatus.PENDING,
                UserRequest.created_at < created_before,
                VideoAsset.status == AssetStatus.AVAILABLE,
                VideoAsset.updated_at < created_before,
            )
            .order_by(UserRequest.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())
