"""
Durable job queue for video generation, backed by PostgreSQL.

Jobs are rows in generation_jobs. Enqueueing happens inside the caller's
transaction, so a reservation and its job commit or roll back together.
Workers claim with SELECT ... FOR UPDATE SKIP LOCKED; a job whose worker
died is claimable again once its lock goes stale, which makes delivery
at-least-once rather than exactly-once.
"""

import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.generation_job import GenerationJob, JobStatus
from app.utils.time import utc_now

logger = logging.getLogger(__name__)

GENERATE_VIDEO = "generate_video"


def backoff_seconds(attempts: int, base_seconds: Optional[int] = None) -> int:
    """Exponential backoff after the given number of attempts: 2s, 4s, 8s..."""
    base = settings.GENERATION_BACKOFF_SECONDS if base_seconds is None else base_seconds
    return base * (2 ** max(0, attempts - 1))


class JobQueueService:
    """Service for managing durable generation jobs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_job(self, job_id: UUID) -> Optional[GenerationJob]:
        """Get job by ID."""
        return await self.db.get(GenerationJob, job_id)

    async def get_active_job(self, asset_id: UUID) -> Optional[GenerationJob]:
        """The queued or running job of an asset, if any."""
        result = await self.db.execute(
            select(GenerationJob).where(
                GenerationJob.asset_id == asset_id,
                GenerationJob.status.in_(JobStatus.ACTIVE),
            )
        )
        return result.scalar_one_or_none()

    async def enqueue(self, asset_id: UUID, max_attempts: Optional[int] = None) -> GenerationJob:
        """
        Enqueue a generation job for an asset.

        Idempotent while a job for the asset is still queued or running; the
        partial unique index uq_generation_jobs_active backs this up when two
        transactions race.
        """
        existing = await self.get_active_job(asset_id)
        if existing:
            logger.info("Asset %s already has active job %s; not enqueueing another", asset_id, existing.id)
            return existing

        job = GenerationJob(
            asset_id=asset_id,
            job_type=GENERATE_VIDEO,
            status=JobStatus.QUEUED,
            attempts=0,
            max_attempts=max_attempts or settings.GENERATION_MAX_ATTEMPTS,
        )
        self.db.add(job)
        await self.db.flush()
        await self.db.refresh(job)

        logger.info("Job %s enqueued for asset %s", job.id, asset_id)
        return job

    async def claim_next_job(self, worker_id: str) -> Optional[GenerationJob]:
        """
        Claim the next available job for processing.

        Candidates are queued jobs whose retry_at has passed and running jobs
        whose lock is older than JOB_LOCK_TIMEOUT_SECONDS (crashed worker).
        """
        now = utc_now()
        stale_cutoff = now - timedelta(seconds=settings.JOB_LOCK_TIMEOUT_SECONDS)

        result = await self.db.execute(
            select(GenerationJob)
            .where(
                or_(
                    and_(
                        GenerationJob.status == JobStatus.QUEUED,
                        or_(
                            GenerationJob.retry_at.is_(None),
                            GenerationJob.retry_at <= now,
                        ),
                    ),
                    and_(
                        GenerationJob.status == JobStatus.RUNNING,
                        GenerationJob.locked_at < stale_cutoff,
                    ),
                )
            )
            .order_by(GenerationJob.created_at)
            .limit(1)
            .with_for_update(skip_locked=True)
        )

        job = result.scalar_one_or_none()
        if job:
            if job.status == JobStatus.RUNNING:
                logger.warning("Reclaiming stale job %s previously locked by %s", job.id, job.locked_by)
            job.status = JobStatus.RUNNING
            job.locked_at = now
            job.locked_by = worker_id
            job.attempts += 1

            await self.db.flush()
            logger.info("Worker %s claimed job %s (attempt %s/%s)", worker_id, job.id, job.attempts, job.max_attempts)

        return job

    async def mark_job_succeeded(self, job_id: UUID) -> Optional[GenerationJob]:
        """Mark job as successfully completed."""
        job = await self.db.get(GenerationJob, job_id)
        if job:
            job.status = JobStatus.SUCCEEDED
            job.locked_at = None
            job.locked_by = None
            job.retry_at = None
            job.last_error = None
            await self.db.flush()
            logger.info("Job %s marked as succeeded", job_id)
        return job

    async def mark_job_failed(
        self,
        job_id: UUID,
        error: str,
        terminal: bool = False,
    ) -> Optional[GenerationJob]:
        """
        Record a failed attempt.

        With attempts left the job goes back to queued with an exponential
        retry_at; on the last attempt, or when ``terminal`` is set, it becomes
        terminally failed.
        """
        job = await self.db.get(GenerationJob, job_id)
        if not job:
            return None

        job.last_error = error
        job.locked_at = None
        job.locked_by = None

        if terminal or job.is_final_attempt:
            job.status = JobStatus.FAILED
            job.retry_at = None
            logger.error("Job %s permanently failed after %s attempts: %s", job_id, job.attempts, error)
        else:
            delay = backoff_seconds(job.attempts)
            job.status = JobStatus.QUEUED
            job.retry_at = utc_now() + timedelta(seconds=delay)
            logger.warning(
                "Job %s failed (attempt %s/%s), will retry in %ss: %s",
                job_id,
                job.attempts,
                job.max_attempts,
                delay,
                error,
            )

        await self.db.flush()
        return job
