"""
Telegram router - webhook endpoint for bot updates.
"""

from fastapi import APIRouter, Depends, Request

from app.core.permissions import require_webhook_secret
from app.schemas.telegram import Update
from app.services.conversation_service import ConversationService

router = APIRouter(prefix="/telegram", tags=["telegram"])


def get_conversation_service(request: Request) -> ConversationService:
    return request.app.state.conversation_service


@router.post("/webhook")
async def telegram_webhook(
    update: Update,
    _: None = Depends(require_webhook_secret),
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Receive one update from Telegram.

    Always answers 200 once the secret matches; handler errors are dealt with
    inside the conversation service so Telegram does not redeliver.
    """
    await service.handle_update(update)
    return {"ok": True}
