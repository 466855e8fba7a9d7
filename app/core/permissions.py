"""
Access helpers for the admin and webhook endpoints.

Admin endpoints are guarded by a shared token; the Telegram webhook is
guarded by the secret registered with setWebhook.
"""

import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.config import settings


def check_token(expected: Optional[str], provided: Optional[str]) -> bool:
    """
    Constant-time comparison of a configured token with a provided one.

    Returns False when either side is missing.
    """
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


async def require_admin_token(
    x_admin_token: Optional[str] = Header(default=None),
) -> None:
    """
    Dependency to require the admin token header.

    Usage:
        @router.post("/assets/{asset_id}/retry")
        async def retry_asset(
            asset_id: UUID,
            _: None = Depends(require_admin_token),
        ):
            ...

    Raises:
        HTTPException: 404 if admin access is not configured, 403 on a bad token
    """
    if not settings.ADMIN_API_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Admin API is disabled",
        )
    if not check_token(settings.ADMIN_API_TOKEN, x_admin_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )


async def require_webhook_secret(
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
) -> None:
    """Reject webhook calls that do not carry the configured secret."""
    if settings.TELEGRAM_WEBHOOK_SECRET is None:
        return
    if not check_token(settings.TELEGRAM_WEBHOOK_SECRET, x_telegram_bot_api_secret_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid webhook secret",
        )
