"""
Main FastAPI application.

This is the entry point for the API server.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.config import settings
from app.core.logging_config import configure_logging
from app.errors import AppError, app_error_handler
from app.routers import assets, health, telegram
from app.services.conversation_service import ConversationService
from app.services.delivery_gateway import build_delivery_gateway
from app.services.telegram_client import TelegramBotClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for the FastAPI app.

    - On startup: configure logging and build the Telegram client and the
      conversation service shared by all requests.
    - On shutdown: close the Telegram client's connection pool.
    """
    configure_logging()
    logger.info("Starting %s (bot mode: %s)", settings.APP_NAME, settings.BOT_MODE)

    client = TelegramBotClient()
    app.state.telegram_client = client
    app.state.conversation_service = ConversationService(build_delivery_gateway(client))

    yield  # The server runs while we're "yielded" here

    await client.close()
    logger.info("Shutting down %s", settings.APP_NAME)


# Create the FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Telegram ordering bot and delivery engine for personalized greeting videos",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(AppError, app_error_handler)

# Include routers (API endpoints)
app.include_router(health.router, tags=["health"])
app.include_router(telegram.router)
app.include_router(assets.router)
