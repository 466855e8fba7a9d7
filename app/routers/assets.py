"""
Assets router - admin API endpoints for generated videos.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import require_admin_token
from app.db.session import get_db
from app.errors import raise_app_error
from app.models.video_asset import AssetStatus
from app.repositories.asset_repository import AssetRepository
from app.repositories.request_repository import RequestRepository
from app.schemas.asset import RetryResponse, UserRequestRead, VideoAssetDetail, VideoAssetRead
from app.services.retry_service import RetryOutcome, RetryService

router = APIRouter(prefix="/assets", tags=["assets"], dependencies=[Depends(require_admin_token)])


@router.get("", response_model=List[VideoAssetRead])
async def list_assets(
    db: AsyncSession = Depends(get_db),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    status: Optional[str] = None,
):
    """List assets, most recently updated first; optionally filtered by status."""
    if status is not None and status not in AssetStatus.ALL:
        raise_app_error(422, "INVALID_STATUS", f"Unknown asset status {status!r}", {"allowed": AssetStatus.ALL})
    return await AssetRepository(db).list_assets(status=status, limit=limit, offset=offset)


@router.get("/{asset_id}", response_model=VideoAssetDetail)
async def get_asset(
    asset_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get an asset with its request ledger."""
    asset = await AssetRepository(db).get_by_id(asset_id)
    if not asset:
        raise_app_error(status.HTTP_404_NOT_FOUND, "ASSET_NOT_FOUND", f"Asset {asset_id} not found")

    requests = await RequestRepository(db).list_for_asset(asset_id)
    # the ORM relationship is never loaded; the ledger comes from its own query
    return VideoAssetDetail(
        **VideoAssetRead.model_validate(asset).model_dump(),
        requests=[UserRequestRead.model_validate(r) for r in requests],
    )


def get_retry_service() -> RetryService:
    return RetryService()


@router.post("/{asset_id}/retry", response_model=RetryResponse)
async def retry_asset(
    asset_id: UUID,
    retries: RetryService = Depends(get_retry_service),
):
    """Re-arm a failed asset for generation. Idempotent."""
    result = await retries.retry(asset_id)
    if result.outcome == RetryOutcome.NOT_FOUND:
        raise_app_error(status.HTTP_404_NOT_FOUND, "ASSET_NOT_FOUND", f"Asset {asset_id} not found")
    return RetryResponse(asset_id=asset_id, outcome=result.outcome, reopened=result.reopened)
