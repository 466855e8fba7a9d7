"""Long-polling bot runner for deployments without a public webhook URL.

Usage:
    python -m app.workers.bot_poller
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from pydantic import ValidationError

from app.core.logging_config import configure_logging
from app.errors import TelegramApiError
from app.schemas.telegram import Update
from app.services.conversation_service import ConversationService
from app.services.delivery_gateway import build_delivery_gateway
from app.services.telegram_client import TelegramBotClient

logger = logging.getLogger(__name__)

ERROR_BACKOFF_SECONDS = 5.0


class BotPoller:
    """Feeds getUpdates results to the conversation service, in order."""

    def __init__(self, client: TelegramBotClient, service: ConversationService, poll_timeout: Optional[int] = None):
        self.client = client
        self.service = service
        self.poll_timeout = poll_timeout
        self.offset: Optional[int] = None
        self._stop_event = asyncio.Event()

    def request_stop(self) -> None:
        self._stop_event.set()

    async def poll_once(self) -> int:
        """Fetch one batch of updates and handle them; returns the batch size."""
        updates = await self.client.get_updates(offset=self.offset, timeout=self.poll_timeout)
        for raw in updates:
            self.offset = raw["update_id"] + 1
            try:
                update = Update.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Skipping malformed update %s: %s", raw.get("update_id"), exc)
                continue
            await self.service.handle_update(update)
        return len(updates)

    async def run_forever(self) -> None:
        # getUpdates is refused while a webhook is registered
        await self.client.delete_webhook()
        logger.info("Bot poller started")
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except TelegramApiError as exc:
                logger.warning("getUpdates failed: %s; retrying in %ss", exc, ERROR_BACKOFF_SECONDS)
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=ERROR_BACKOFF_SECONDS)
                except asyncio.TimeoutError:
                    pass
        logger.info("Bot poller stopped")


async def run_poller() -> int:
    async with TelegramBotClient() as client:
        poller = BotPoller(client, ConversationService(build_delivery_gateway(client)))
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, poller.request_stop)
            except NotImplementedError:
                pass
        await poller.run_forever()
    return 0


def main() -> int:
    configure_logging()
    return asyncio.run(run_poller())


if __name__ == "__main__":
    raise SystemExit(main())
