"""
Generation orchestrator: consumes generation jobs.

One job generates the video for one asset and fans it out to every user
waiting on that asset. The order of steps matters:

1. the asset is marked generating before pending requests are read, so any
   order placed afterwards either is in the snapshot or subscribes to it;
2. the file_id is committed, and the asset made available, before it is
   used for any further delivery, so every later order is served cached;
3. pending requests are re-read after step 2, which picks up users who
   subscribed while the video was being rendered.

A failed attempt leaves every status untouched and goes back to the queue.
Only the final attempt marks the asset and its pending requests failed and
tells each affected user, once, that they can retry.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import SessionFactory, get_async_session_context, run_serializable
from app.errors import AssetNotFoundError, DeliveryError, GenerationError
from app.models.generation_job import GenerationJob
from app.models.user_request import UserRequest
from app.models.video_asset import AssetStatus
from app.repositories.asset_repository import AssetRepository
from app.repositories.request_repository import RequestRepository
from app.services import messages
from app.services.delivery_gateway import TelegramDeliveryGateway
from app.services.job_queue_service import JobQueueService
from app.services.tts_service import TtsService, spoken_name
from app.services.video_service import VideoService
from app.utils.time import utc_now

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    asset_id: UUID
    file_id: Optional[str] = None
    delivered: List[UUID] = field(default_factory=list)
    undelivered: List[UUID] = field(default_factory=list)
    generated: bool = False
    idle: bool = False


def is_fatal(exc: BaseException) -> bool:
    """Errors that no amount of retrying will fix."""
    if isinstance(exc, AssetNotFoundError):
        return True
    return isinstance(exc, GenerationError) and not exc.retryable


class GenerationOrchestrator:
    def __init__(
        self,
        tts: TtsService,
        video: VideoService,
        gateway: TelegramDeliveryGateway,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.tts = tts
        self.video = video
        self.gateway = gateway
        self.session_factory = session_factory

    def _session(self):
        return get_async_session_context(self.session_factory)

    async def run_job(self, job: GenerationJob) -> Optional[GenerationResult]:
        """
        Process a claimed job and record its outcome on the job row.

        Returns the generation result, or None when the attempt failed.
        """
        logger.info("Processing job %s for asset %s (attempt %s/%s)", job.id, job.asset_id, job.attempts, job.max_attempts)
        try:
            result = await self.process(job.asset_id)
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.error(
                "Generation of asset %s failed (attempt %s/%s): %s",
                job.asset_id,
                job.attempts,
                job.max_attempts,
                error,
                exc_info=not isinstance(exc, (GenerationError, AssetNotFoundError, DeliveryError)),
            )
            if job.is_final_attempt or is_fatal(exc):
                await self.fail_terminally(job, error)
            else:
                async with self._session() as db:
                    await JobQueueService(db).mark_job_failed(job.id, error)
            return None

        async with self._session() as db:
            await JobQueueService(db).mark_job_succeeded(job.id)
        return result

    async def process(self, asset_id: UUID) -> GenerationResult:
        """Generate the asset's video once and deliver it to every pending request."""
        result = GenerationResult(asset_id=asset_id)
        audio_path: Optional[Path] = None
        video_path: Optional[Path] = None

        try:
            # 1. generating, unless an earlier run of this job already produced the video
            async with self._session() as db:
                assets = AssetRepository(db)
                asset = await assets.get_by_id(asset_id)
                if asset is None:
                    raise AssetNotFoundError(asset_id)
                if asset.status == AssetStatus.AVAILABLE and asset.telegram_file_id:
                    logger.warning("Asset %s already has a video; resuming delivery by file_id", asset_id)
                    result.file_id = asset.telegram_file_id
                else:
                    asset = await assets.mark_generating(asset_id)
                    if asset is None:
                        raise AssetNotFoundError(asset_id)
                name = asset.name

            # 2. fresh snapshot of everyone waiting
            pending = await self._pending(asset_id)

            # 3. nobody waiting
            if not pending:
                if result.file_id is None and await self._retire_idle(asset_id):
                    result.idle = True
                    return result
                pending = await self._pending(asset_id)
                if not pending:
                    result.idle = True
                    return result

            if result.file_id is None:
                # 4. render
                audio_path = await self.tts.synthesize(name)
                video_path = await self.video.mux(audio_path)
                result.generated = True

                # 5. first successful delivery uploads and yields the reusable file_id
                first = await self._upload(result, pending, video_path)

                # 6. persist the file_id before it is used again
                async with self._session() as db:
                    await AssetRepository(db).mark_available(asset_id, result.file_id, generated_at=utc_now())
                logger.info("Asset %s is available (file_id=%s)", asset_id, result.file_id)

                await self.gateway.follow_up(first.user_id, messages.video_ready(spoken_name(name)))

                # late subscribers that arrived while rendering are included here
                pending = await self._pending(asset_id)

            # 7. fan out by file_id; recipients the upload already failed for stay pending
            already = set(result.delivered) | set(result.undelivered)
            for request in pending:
                if request.id in already:
                    continue
                try:
                    await self.gateway.deliver_by_handle(request.user_id, result.file_id)
                except Exception as exc:
                    logger.error("Delivery of asset %s to user %s failed: %s", asset_id, request.user_id, exc)
                    result.undelivered.append(request.id)
                    continue
                result.delivered.append(request.id)
                await self.gateway.follow_up(request.user_id, messages.video_ready(spoken_name(name)))

            # 8. complete what was delivered
            async with self._session() as db:
                completed = await RequestRepository(db).mark_completed(asset_id, result.delivered)

            logger.info(
                "Asset %s delivered to %s subscriber(s), %s completed, %s left pending",
                asset_id,
                len(result.delivered),
                completed,
                len(result.undelivered),
            )
            return result
        finally:
            # 9. transient files
            for path in (audio_path, video_path):
                if path is not None:
                    try:
                        Path(path).unlink(missing_ok=True)
                    except OSError as exc:
                        logger.warning("Could not remove %s: %s", path, exc)

    async def _upload(self, result: GenerationResult, pending: List[UserRequest], video_path: Path) -> UserRequest:
        """
        Upload the video to the first pending user who accepts it.

        A recipient that cannot be reached is recorded as undelivered and the
        next one is tried; the attempt fails only when nobody could be reached.
        """
        for request in pending:
            try:
                result.file_id = await self.gateway.deliver_new(request.user_id, video_path)
            except DeliveryError as exc:
                logger.error("Upload of asset %s to user %s failed: %s", result.asset_id, request.user_id, exc)
                result.undelivered.append(request.id)
                continue
            result.delivered.append(request.id)
            return request
        raise DeliveryError(None, f"upload of asset {result.asset_id} failed for all {len(pending)} pending request(s)")

    async def _pending(self, asset_id: UUID) -> List[UserRequest]:
        async with self._session() as db:
            return await RequestRepository(db).list_pending(asset_id)

    async def _retire_idle(self, asset_id: UUID) -> bool:
        """
        Mark an asset with nobody waiting as failed, so the next order re-arms it.

        Runs serializable against concurrent reservations: if one subscribes
        meanwhile, the asset is left generating and False is returned.
        """

        async def work(db: AsyncSession) -> bool:
            if await RequestRepository(db).list_pending(asset_id):
                return False
            await AssetRepository(db).mark_failed(asset_id)
            return True

        retired = await run_serializable(
            work,
            session_factory=self.session_factory,
            label=f"retire_idle({asset_id})",
        )
        if retired:
            logger.info("Asset %s had no pending requests; marked failed without notifications", asset_id)
        return retired

    async def fail_terminally(self, job: GenerationJob, error: str) -> List[int]:
        """
        Final failure: job, asset and pending requests become failed together,
        then each affected user is told once.

        The writes run serializable, like a reservation: an order placed
        concurrently either lands before them and is failed and notified here,
        or conflicts and re-runs against the failed asset, re-arming it.

        If these writes fail the asset stays in flight and the job keeps its
        lock until it goes stale and is claimed again; the reconciliation
        sweep covers assets that end up with no live job at all.
        """

        async def work(db: AsyncSession) -> List[int]:
            await JobQueueService(db).mark_job_failed(job.id, error, terminal=True)
            await AssetRepository(db).mark_failed(job.asset_id)
            return await RequestRepository(db).fail_pending(job.asset_id)

        try:
            user_ids = await run_serializable(
                work,
                session_factory=self.session_factory,
                label=f"fail_terminally({job.asset_id})",
            )
        except Exception:
            logger.critical("Could not record final failure of asset %s (job %s)", job.asset_id, job.id, exc_info=True)
            return []

        notified = list(dict.fromkeys(user_ids))
        logger.error("Asset %s failed permanently; notifying %s user(s)", job.asset_id, len(notified))
        await notify_failure(self.gateway, job.asset_id, notified)
        return notified


async def notify_failure(gateway: TelegramDeliveryGateway, asset_id: UUID, user_ids: List[int]) -> None:
    """Tell each user that generation failed, with a retry button."""
    for user_id in user_ids:
        try:
            await gateway.notify(user_id, messages.GENERATION_FAILED, messages.retry_keyboard(asset_id))
        except Exception as exc:
            logger.error("Failed to send failure notification to user %s: %s", user_id, exc)
