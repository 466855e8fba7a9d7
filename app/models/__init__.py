"""
Models package.

Import all models here so they are registered with SQLAlchemy.
This file also makes it easy to import models from one place.
"""

from app.models.bot_user import BotUser
from app.models.conversation_session import ConversationSession, ConversationStep
from app.models.generation_job import GenerationJob, JobStatus
from app.models.system_asset import SystemAsset
from app.models.user_request import RequestStatus, UserRequest
from app.models.video_asset import AssetStatus, VideoAsset

# Export all models
__all__ = [
    "AssetStatus",
    "BotUser",
    "ConversationSession",
    "ConversationStep",
    "GenerationJob",
    "JobStatus",
    "RequestStatus",
    "SystemAsset",
    "UserRequest",
    "VideoAsset",
]
