"""
Reservation engine.

Decides, for one user's order, whether to serve a cached video, subscribe the
user to a generation already in flight, or reserve the right to generate. The
decision and its writes run as one SERIALIZABLE unit of work that is retried
on serialization conflicts, so concurrent orders for the same name produce
exactly one generation per epoch.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import SessionFactory, run_serializable
from app.models.user_request import RequestStatus
from app.models.video_asset import AssetStatus, VideoAsset
from app.repositories.asset_repository import AssetRepository
from app.repositories.request_repository import RequestRepository
from app.services.job_queue_service import JobQueueService
from app.services.name_validation import normalize_name
from app.utils.time import utc_now

logger = logging.getLogger(__name__)


class ReservationKind:
    SERVE_CACHED = "serve_cached"
    SUBSCRIBED = "subscribed"
    GENERATE = "generate"


@dataclass(frozen=True)
class ReservationOutcome:
    kind: str
    asset_id: UUID
    file_id: Optional[str] = None


def is_expired(asset: VideoAsset, now: datetime, retention_days: Optional[int] = None) -> bool:
    """
    An available asset older than the retention window is expired.

    Age is measured from when the current video was generated, falling back
    to the row creation time.
    """
    days = settings.CACHE_RETENTION_DAYS if retention_days is None else retention_days
    produced_at = asset.generated_at or asset.created_at
    return now - produced_at > timedelta(days=days)


def is_servable(asset: VideoAsset, now: datetime) -> bool:
    return (
        asset.status == AssetStatus.AVAILABLE
        and bool(asset.telegram_file_id)
        and not is_expired(asset, now)
    )


class ReservationService:
    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self.session_factory = session_factory

    async def reserve(self, user_id: int, child_name: str, child_age: Optional[int] = None) -> ReservationOutcome:
        """
        Record the user's order and decide what happens next.

        Serialization conflicts are retried transparently; any other
        persistence error propagates with nothing written.
        """
        name = normalize_name(child_name)

        async def work(db: AsyncSession) -> ReservationOutcome:
            return await self._reserve(db, user_id, name, child_age)

        outcome = await run_serializable(
            work,
            session_factory=self.session_factory,
            label=f"reserve({name!r})",
        )
        logger.info("Reservation for user %s name=%r: %s (asset %s)", user_id, name, outcome.kind, outcome.asset_id)
        return outcome

    async def _reserve(
        self,
        db: AsyncSession,
        user_id: int,
        name: str,
        child_age: Optional[int],
    ) -> ReservationOutcome:
        assets = AssetRepository(db)
        requests = RequestRepository(db)
        now = utc_now()

        asset = await assets.get_by_name(name)

        if asset is None:
            asset = await assets.create(name)
            logger.info("New asset %s created for %r", asset.id, name)
            return await self._reserve_generation(db, asset.id, user_id, child_age)

        if is_servable(asset, now):
            await requests.create(user_id, asset.id, RequestStatus.COMPLETED, child_age)
            return ReservationOutcome(ReservationKind.SERVE_CACHED, asset.id, asset.telegram_file_id)

        if asset.status in AssetStatus.IN_FLIGHT:
            await requests.create(user_id, asset.id, RequestStatus.PENDING, child_age)
            return ReservationOutcome(ReservationKind.SUBSCRIBED, asset.id)

        # Failed, or available but expired
        reason = "failed" if asset.status == AssetStatus.FAILED else "expired"
        logger.info("Regenerating asset %s for %r (%s)", asset.id, name, reason)
        await assets.reset_to_pending(asset.id)
        return await self._reserve_generation(db, asset.id, user_id, child_age)

    async def _reserve_generation(
        self,
        db: AsyncSession,
        asset_id: UUID,
        user_id: int,
        child_age: Optional[int],
    ) -> ReservationOutcome:
        await RequestRepository(db).create(user_id, asset_id, RequestStatus.PENDING, child_age)
        await JobQueueService(db).enqueue(asset_id)
        return ReservationOutcome(ReservationKind.GENERATE, asset_id)
