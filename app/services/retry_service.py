"""
Manual retry trigger for failed generations.

Reached from the "try again" button sent with a failure notification and from
the admin API. Retrying is idempotent: only a failed (or expired) asset is
re-armed; any other state just reports where the asset stands.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import SessionFactory, run_serializable
from app.models.user_request import RequestStatus
from app.models.video_asset import AssetStatus
from app.repositories.asset_repository import AssetRepository
from app.repositories.request_repository import RequestRepository
from app.services.job_queue_service import JobQueueService
from app.services.reservation_service import is_servable
from app.utils.time import utc_now

logger = logging.getLogger(__name__)


class RetryOutcome:
    REQUEUED = "requeued"
    ALREADY_AVAILABLE = "already_available"
    IN_PROGRESS = "in_progress"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RetryResult:
    outcome: str
    asset_id: UUID
    file_id: Optional[str] = None
    reopened: int = 0


class RetryService:
    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self.session_factory = session_factory

    async def retry(self, asset_id: UUID, user_id: Optional[int] = None) -> RetryResult:
        """
        Re-arm a failed asset: pending again, file_id cleared, the requests
        failed along with it reopened and a new job enqueued, all in one
        transaction. Requests that failed in earlier cycles stay failed.

        When ``user_id`` is given and that user has nothing pending on the
        asset afterwards, a fresh pending request is recorded for them.
        """

        async def work(db: AsyncSession) -> RetryResult:
            return await self._retry(db, asset_id, user_id)

        result = await run_serializable(
            work,
            session_factory=self.session_factory,
            label=f"retry({asset_id})",
        )
        logger.info("Retry of asset %s by %s: %s", asset_id, user_id or "admin", result.outcome)
        return result

    async def _retry(self, db: AsyncSession, asset_id: UUID, user_id: Optional[int]) -> RetryResult:
        assets = AssetRepository(db)
        requests = RequestRepository(db)

        asset = await assets.get_by_id(asset_id)
        if asset is None:
            return RetryResult(RetryOutcome.NOT_FOUND, asset_id)

        if is_servable(asset, utc_now()):
            return RetryResult(RetryOutcome.ALREADY_AVAILABLE, asset_id, file_id=asset.telegram_file_id)

        if asset.status in AssetStatus.IN_FLIGHT:
            return RetryResult(RetryOutcome.IN_PROGRESS, asset_id)

        failed_at = asset.updated_at
        await assets.reset_to_pending(asset_id)
        reopened = await requests.reopen_failed(asset_id, failed_since=failed_at)

        if user_id is not None:
            pending = await requests.list_pending(asset_id)
            if not any(r.user_id == user_id for r in pending):
                await requests.create(user_id, asset_id, RequestStatus.PENDING)

        await JobQueueService(db).enqueue(asset_id)
        return RetryResult(RetryOutcome.REQUEUED, asset_id, reopened=reopened)
