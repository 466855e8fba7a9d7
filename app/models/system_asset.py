"""
SystemAsset model.

Static media (upsell coupons) uploaded once and then re-sent by file_id.
"""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.base_model import TimestampMixin


class SystemAsset(TimestampMixin, Base):
    """Cached Telegram file_id for a static media file."""

    __tablename__ = "system_assets"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    telegram_file_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
