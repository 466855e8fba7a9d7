"""
Schemas package.

Import all schemas here for easy access.
"""

from app.schemas.asset import RetryResponse, UserRequestRead, VideoAssetDetail, VideoAssetRead
from app.schemas.telegram import CallbackQuery, Chat, Contact, Message, TelegramUser, Update

__all__ = [
    "VideoAssetRead",
    "VideoAssetDetail",
    "UserRequestRead",
    "RetryResponse",
    "Update",
    "Message",
    "CallbackQuery",
    "Contact",
    "Chat",
    "TelegramUser",
]
