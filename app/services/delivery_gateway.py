"""
Delivery gateway: sends videos and notifications to users over Telegram.

The first delivery of a freshly generated video uploads the file and returns
the Telegram file_id; every later delivery re-sends that file_id without
uploading again.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.config import settings
from app.db.session import SessionFactory
from app.errors import DeliveryError
from app.services import messages
from app.services.coupon_service import CouponService
from app.services.telegram_client import TelegramBotClient

logger = logging.getLogger(__name__)


class TelegramDeliveryGateway:
    """Sends artifacts and messages through a TelegramBotClient."""

    def __init__(self, client: TelegramBotClient, coupons: Optional[CouponService] = None):
        self.client = client
        self.coupons = coupons

    async def deliver_new(self, user_id: int, video_path: Path, caption: str = messages.VIDEO_CAPTION) -> str:
        """Upload a video to ``user_id`` and return its reusable file_id."""
        result = await self.client.send_video(
            user_id,
            Path(video_path),
            caption=caption,
            width=settings.VIDEO_WIDTH,
            height=settings.VIDEO_HEIGHT,
        )
        file_id = ((result or {}).get("video") or {}).get("file_id")
        if not file_id:
            raise DeliveryError(user_id, "sendVideo response carried no video.file_id")
        logger.info("Uploaded video to user %s (file_id=%s)", user_id, file_id)
        return file_id

    async def deliver_by_handle(self, user_id: int, file_id: str, caption: str = messages.VIDEO_CAPTION) -> None:
        """Re-send an already uploaded video by its file_id."""
        await self.client.send_video(
            user_id,
            file_id,
            caption=caption,
            width=settings.VIDEO_WIDTH,
            height=settings.VIDEO_HEIGHT,
        )
        logger.info("Delivered cached video to user %s", user_id)

    async def notify(self, user_id: int, text: str, reply_markup: Optional[Dict[str, Any]] = None) -> None:
        await self.client.send_message(user_id, text, reply_markup=reply_markup)

    async def follow_up(self, user_id: int, text: str) -> None:
        """
        Coupons and the "order another" prompt after a delivered video.

        Best effort: the video already reached the user, so failures here are
        logged and never change any request status.
        """
        if self.coupons is not None:
            try:
                await self.coupons.send_coupons(user_id)
            except Exception as exc:
                logger.warning("Failed to send coupons to user %s: %s", user_id, exc)
        try:
            await self.notify(user_id, text, messages.order_another_keyboard())
        except DeliveryError as exc:
            logger.warning("Failed to send follow-up to user %s: %s", user_id, exc)


def build_delivery_gateway(
    client: TelegramBotClient,
    session_factory: Optional[SessionFactory] = None,
) -> TelegramDeliveryGateway:
    """Gateway wired with the coupon sender."""
    return TelegramDeliveryGateway(client, CouponService(client, session_factory=session_factory))
