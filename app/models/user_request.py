"""
UserRequest model.

Ledger entry for one user's order of one VideoAsset. Many requests point at
the same asset; each tracks its own delivery outcome.
"""

import uuid
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base_model import UUIDModel


class RequestStatus:
    """Delivery states of a UserRequest."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = [PENDING, COMPLETED, FAILED]


class UserRequest(UUIDModel):
    """One user's ask against one VideoAsset."""

    __tablename__ = "user_requests"

    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("bot_users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    asset_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("video_assets.id", ondelete="RESTRICT"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RequestStatus.PENDING)

    # Personalization / analytics data supplied by the user
    child_age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    asset = relationship("VideoAsset", back_populates="requests", lazy="raise")

    __table_args__ = (
        # Fan-out reads "pending requests of asset X" in creation order
        Index("ix_user_requests_asset_status_created", "asset_id", "status", "created_at"),
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_user_requests_status",
        ),
    )
