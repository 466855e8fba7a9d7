"""
Upsell coupons sent after a delivered video.

Each coupon image is uploaded once; the returned photo file_id is cached in
system_assets and reused for every later send.
"""

import logging
from pathlib import Path
from typing import List, Optional

from app.core.config import settings
from app.db.session import SessionFactory, get_async_session_context
from app.repositories.system_asset_repository import SystemAssetRepository
from app.services.telegram_client import TelegramBotClient

logger = logging.getLogger(__name__)


class CouponService:
    def __init__(
        self,
        client: TelegramBotClient,
        session_factory: Optional[SessionFactory] = None,
        keys: Optional[List[str]] = None,
        assets_dir: Optional[Path] = None,
        enabled: Optional[bool] = None,
    ):
        self.client = client
        self.session_factory = session_factory
        self.keys = list(settings.COUPON_KEYS if keys is None else keys)
        self.assets_dir = Path(assets_dir or settings.COUPON_ASSETS_DIR)
        self.enabled = settings.SEND_COUPONS if enabled is None else enabled

    async def send_coupons(self, user_id: int) -> int:
        """Send every configured coupon to ``user_id``; returns how many were sent."""
        if not self.enabled:
            logger.debug("Coupons disabled, skipping user %s", user_id)
            return 0

        sent = 0
        for key in self.keys:
            async with get_async_session_context(self.session_factory) as db:
                file_id = await SystemAssetRepository(db).get_file_id(key)

            if file_id:
                await self.client.send_photo(user_id, file_id)
            else:
                path = self.assets_dir / f"{key}.jpeg"
                logger.info("Uploading coupon %s from %s for the first time", key, path)
                message = await self.client.send_photo(user_id, path)
                photos = (message or {}).get("photo") or []
                if photos:
                    # Telegram lists sizes smallest first
                    async with get_async_session_context(self.session_factory) as db:
                        await SystemAssetRepository(db).set_file_id(key, photos[-1]["file_id"])
                    logger.info("Coupon %s file_id cached", key)
            sent += 1
        return sent
