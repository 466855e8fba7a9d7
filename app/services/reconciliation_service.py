"""
Periodic reconciliation of the asset store and the request ledger.

Two kinds of drift are repaired:

- assets stuck pending/generating with no live job behind them are failed,
  together with their pending requests, and the affected users get a retry
  button;
- pending requests of an available asset (a single delivery that failed
  during fan-out) are redelivered by file_id and completed on success.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import SessionFactory, get_async_session_context, run_serializable
from app.repositories.asset_repository import AssetRepository
from app.repositories.request_repository import RequestRepository
from app.services import messages
from app.services.delivery_gateway import TelegramDeliveryGateway
from app.services.generation_orchestrator import notify_failure
from app.services.tts_service import spoken_name
from app.utils.time import utc_now

logger = logging.getLogger(__name__)


async def _fail_if_stalled(db: AsyncSession, asset_id: UUID, cutoff: datetime) -> Optional[List[int]]:
    """Fail a still-stalled asset and its pending requests; None if it moved on meanwhile."""
    if await AssetRepository(db).fail_if_stalled(asset_id, cutoff) is None:
        return None
    return await RequestRepository(db).fail_pending(asset_id)


@dataclass
class SweepReport:
    failed_assets: int = 0
    notified_users: int = 0
    redelivered: int = 0
    redelivery_errors: int = 0


class ReconciliationService:
    def __init__(
        self,
        gateway: TelegramDeliveryGateway,
        session_factory: Optional[SessionFactory] = None,
        stuck_after_seconds: Optional[int] = None,
        batch_size: int = 100,
    ):
        self.gateway = gateway
        self.session_factory = session_factory
        self.stuck_after = timedelta(
            seconds=settings.STUCK_GENERATION_TIMEOUT_SECONDS if stuck_after_seconds is None else stuck_after_seconds
        )
        self.batch_size = batch_size

    async def sweep(self) -> SweepReport:
        report = SweepReport()
        cutoff = utc_now() - self.stuck_after
        await self._fail_stalled(cutoff, report)
        await self._redeliver(cutoff, report)
        if report.failed_assets or report.redelivered or report.redelivery_errors:
            logger.info(
                "Reconciliation: %s stalled asset(s) failed, %s user(s) notified, %s redelivered, %s redelivery error(s)",
                report.failed_assets,
                report.notified_users,
                report.redelivered,
                report.redelivery_errors,
            )
        return report

    async def _fail_stalled(self, cutoff: datetime, report: SweepReport) -> None:
        async with get_async_session_context(self.session_factory) as db:
            stalled = await AssetRepository(db).list_stalled(cutoff, limit=self.batch_size)
            asset_ids = [asset.id for asset in stalled]

        for asset_id in asset_ids:
            user_ids = await run_serializable(
                partial(_fail_if_stalled, asset_id=asset_id, cutoff=cutoff),
                session_factory=self.session_factory,
                label=f"fail_stalled({asset_id})",
            )
            if user_ids is None:
                continue

            notified = list(dict.fromkeys(user_ids))
            logger.warning("Asset %s was stalled with no live job; marked failed", asset_id)
            await notify_failure(self.gateway, asset_id, notified)
            report.failed_assets += 1
            report.notified_users += len(notified)

    async def _redeliver(self, cutoff: datetime, report: SweepReport) -> None:
        async with get_async_session_context(self.session_factory) as db:
            requests = await RequestRepository(db).list_undelivered_for_available(cutoff, limit=self.batch_size)
            work = []
            assets = AssetRepository(db)
            for request in requests:
                asset = await assets.get_by_id(request.asset_id)
                if asset is not None and asset.telegram_file_id:
                    work.append((request.id, request.user_id, asset.id, asset.name, asset.telegram_file_id))

        for request_id, user_id, asset_id, name, file_id in work:
            try:
                await self.gateway.deliver_by_handle(user_id, file_id)
            except Exception as exc:
                logger.error("Redelivery of asset %s to user %s failed: %s", asset_id, user_id, exc)
                report.redelivery_errors += 1
                continue
            async with get_async_session_context(self.session_factory) as db:
                await RequestRepository(db).mark_completed(asset_id, [request_id])
            await self.gateway.follow_up(user_id, messages.video_ready(spoken_name(name)))
            report.redelivered += 1
