"""
VideoAsset Pydantic schemas for the admin API.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.schemas.base import RecordRead


class UserRequestRead(RecordRead):
    """A ledger entry as shown to admins."""

    user_id: int
    asset_id: UUID
    status: str
    child_age: Optional[int] = None


class VideoAssetRead(RecordRead):
    """Schema for reading an asset (API response)."""

    name: str
    status: str
    telegram_file_id: Optional[str] = None
    generated_at: Optional[datetime] = None


class VideoAssetDetail(VideoAssetRead):
    """Asset with its request ledger."""

    requests: List[UserRequestRead] = []


class RetryResponse(BaseModel):
    """Result of a manual retry."""

    asset_id: UUID
    outcome: str
    reopened: int = 0

    model_config = ConfigDict(from_attributes=True)
