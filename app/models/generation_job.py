"""
Generation job queue model for durable background processing.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base_model import UUIDModel


class JobStatus:
    """Job execution status."""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    ACTIVE = [QUEUED, RUNNING]


class GenerationJob(UUIDModel):
    """
    Durable job queue for video generation.

    Provides persistent job storage with locking for multi-worker
    environments and recovery after process restarts. A running job whose
    lock has gone stale is claimable again, so delivery is at-least-once.
    """

    __tablename__ = "generation_jobs"

    asset_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("video_assets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    job_type: Mapped[str] = mapped_column(String(50), nullable=False, default="generate_video")

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=JobStatus.QUEUED, index=True)

    # Retry tracking; attempts is incremented on every claim
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    retry_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True, index=True)

    # Worker locking mechanism
    locked_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    locked_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_generation_jobs_status_retry", "status", "retry_at"),
        Index("ix_generation_jobs_locked", "locked_at", "locked_by"),
        # At most one live job per asset
        Index(
            "uq_generation_jobs_active",
            "asset_id",
            unique=True,
            postgresql_where=text("status IN ('queued', 'running')"),
        ),
    )

    @property
    def is_final_attempt(self) -> bool:
        return self.attempts >= self.max_attempts
