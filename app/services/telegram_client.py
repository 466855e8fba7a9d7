"""
Minimal async Telegram Bot API client.

Only the methods the bot uses are wrapped. Every call returns the decoded
``result`` field; an ``ok: false`` answer or a transport failure raises
TelegramApiError.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from app.core.config import settings
from app.errors import TelegramApiError

logger = logging.getLogger(__name__)

InputMedia = Union[str, Path]


class TelegramBotClient:
    """httpx-based Bot API client; use as an async context manager or call close()."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        token = token or settings.TELEGRAM_BOT_TOKEN
        root = (base_url or settings.TELEGRAM_API_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{root}/bot{token}/",
            timeout=httpx.Timeout(timeout or settings.HTTP_TIMEOUT_SECONDS),
            transport=transport,
        )

    async def __aenter__(self) -> "TelegramBotClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def call(
        self,
        method: str,
        payload: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        chat_id: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """POST a Bot API method and unwrap its result."""
        params = {k: v for k, v in (payload or {}).items() if v is not None}
        request_kwargs: Dict[str, Any] = {}
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        try:
            if files:
                # multipart fields must be strings; nested objects are JSON-encoded
                data = {
                    k: json.dumps(v) if isinstance(v, (dict, list)) else str(v)
                    for k, v in params.items()
                }
                resp = await self._client.post(method, data=data, files=files, **request_kwargs)
            else:
                resp = await self._client.post(method, json=params, **request_kwargs)
        except httpx.HTTPError as exc:
            raise TelegramApiError(method, f"transport error: {exc}", user_id=chat_id) from exc

        try:
            body = resp.json()
        except ValueError as exc:
            raise TelegramApiError(method, f"HTTP {resp.status_code}: non-JSON response", user_id=chat_id) from exc

        if not body.get("ok"):
            raise TelegramApiError(
                method,
                body.get("description") or f"HTTP {resp.status_code}",
                user_id=chat_id,
                error_code=body.get("error_code"),
            )
        return body.get("result")

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
        parse_mode: Optional[str] = "HTML",
    ) -> Dict[str, Any]:
        return await self.call(
            "sendMessage",
            {"chat_id": chat_id, "text": text, "reply_markup": reply_markup, "parse_mode": parse_mode},
            chat_id=chat_id,
        )

    async def send_video(
        self,
        chat_id: int,
        video: InputMedia,
        caption: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a video by file_id (str) or upload it from disk (Path)."""
        payload = {
            "chat_id": chat_id,
            "caption": caption,
            "width": width,
            "height": height,
            "supports_streaming": True,
            "reply_markup": reply_markup,
        }
        if isinstance(video, Path):
            with video.open("rb") as fh:
                return await self.call(
                    "sendVideo",
                    payload,
                    files={"video": (video.name, fh, "video/mp4")},
                    chat_id=chat_id,
                )
        payload["video"] = video
        return await self.call("sendVideo", payload, chat_id=chat_id)

    async def send_photo(self, chat_id: int, photo: InputMedia, caption: Optional[str] = None) -> Dict[str, Any]:
        """Send a photo by file_id (str) or upload it from disk (Path)."""
        payload = {"chat_id": chat_id, "caption": caption}
        if isinstance(photo, Path):
            with photo.open("rb") as fh:
                return await self.call(
                    "sendPhoto",
                    payload,
                    files={"photo": (photo.name, fh, "image/jpeg")},
                    chat_id=chat_id,
                )
        payload["photo"] = photo
        return await self.call("sendPhoto", payload, chat_id=chat_id)

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> bool:
        return await self.call("answerCallbackQuery", {"callback_query_id": callback_query_id, "text": text})

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        return await self.call("deleteMessage", {"chat_id": chat_id, "message_id": message_id}, chat_id=chat_id)

    async def get_updates(self, offset: Optional[int] = None, timeout: Optional[int] = None) -> List[Dict[str, Any]]:
        """Long-poll for updates; the HTTP timeout is stretched past the poll timeout."""
        poll_timeout = settings.TELEGRAM_POLL_TIMEOUT_SECONDS if timeout is None else timeout
        return await self.call(
            "getUpdates",
            {"offset": offset, "timeout": poll_timeout, "allowed_updates": ["message", "callback_query"]},
            timeout=poll_timeout + 10,
        )

    async def set_webhook(self, url: str, secret_token: Optional[str] = None) -> bool:
        return await self.call(
            "setWebhook",
            {"url": url, "secret_token": secret_token, "allowed_updates": ["message", "callback_query"]},
        )

    async def delete_webhook(self) -> bool:
        return await self.call("deleteWebhook", {})
