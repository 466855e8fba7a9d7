"""
VideoAsset model.

One canonical greeting video per normalized child name. The row carries the
generation status and, once generated, the Telegram file_id that lets the
video be re-sent without uploading it again.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import CheckConstraint, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base_model import UUIDModel


class AssetStatus:
    """Lifecycle states of a VideoAsset."""
    PENDING = "pending"
    GENERATING = "generating"
    AVAILABLE = "available"
    FAILED = "failed"

    ALL = [PENDING, GENERATING, AVAILABLE, FAILED]
    IN_FLIGHT = [PENDING, GENERATING]


class VideoAsset(UUIDModel):
    """Canonical generation target for one normalized name."""

    __tablename__ = "video_assets"

    # Lowercased, trimmed child name; the deduplication key
    name: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=AssetStatus.PENDING)

    # Reusable delivery handle; present iff status == available
    telegram_file_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # When the current handle was produced; cache validity is measured from here
    generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    requests: Mapped[List["UserRequest"]] = relationship(
        "UserRequest",
        back_populates="asset",
        lazy="raise",
    )

    __table_args__ = (
        Index("uq_video_assets_name", "name", unique=True),
        Index("ix_video_assets_status_updated", "status", "updated_at"),
        CheckConstraint(
            "(status = 'available') = (telegram_file_id IS NOT NULL)",
            name="ck_video_assets_handle_iff_available",
        ),
        CheckConstraint(
            "status IN ('pending', 'generating', 'available', 'failed')",
            name="ck_video_assets_status",
        ),
    )

    def __repr__(self) -> str:
        return f"<VideoAsset {self.id} name={self.name!r} status={self.status}>"
