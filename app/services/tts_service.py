"""
Speech synthesis via the ElevenLabs text-to-speech API.

The spoken text is the child's name followed by an exclamation mark; the
resulting mp3 is written under TEMP_DIR/audio.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.errors import GenerationError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 503})


def spoken_name(name: str) -> str:
    """Display form of a normalized name: first letter upper-cased."""
    return name[:1].upper() + name[1:]


class TtsService:
    """Thin async client for ElevenLabs text-to-speech."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        voice_id: Optional[str] = None,
        voice_settings: Optional[Dict[str, Any]] = None,
        base_url: Optional[str] = None,
        output_dir: Optional[Path] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.ELEVENLABS_API_KEY
        self.voice_id = voice_id or settings.ELEVENLABS_VOICE_ID
        self.voice_settings = dict(settings.ELEVENLABS_VOICE_SETTINGS if voice_settings is None else voice_settings)
        self.base_url = (base_url or settings.ELEVENLABS_BASE_URL).rstrip("/")
        self.output_dir = Path(output_dir or Path(settings.TEMP_DIR) / "audio")
        self.timeout = httpx.Timeout(timeout or settings.HTTP_TIMEOUT_SECONDS)
        self._transport = transport

    async def synthesize(self, name: str) -> Path:
        """
        Speak ``name`` and save the audio.

        Raises:
            GenerationError: on transport failure or a non-2xx answer;
                retryable for 429/500/503 and network errors
        """
        text = f"{spoken_name(name)}!"
        url = f"{self.base_url}/v1/text-to-speech/{self.voice_id}"
        headers = {
            "Content-Type": "application/json",
            "Xi-Api-Key": self.api_key,
            "Accept": "audio/mpeg",
        }
        body = {"text": text, **self.voice_settings}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("ElevenLabs request failed for %r: %s", text, exc)
            raise GenerationError("tts", f"ElevenLabs request failed: {exc}", retryable=True) from exc

        if resp.status_code < 200 or resp.status_code >= 300:
            retryable = resp.status_code in RETRYABLE_STATUS_CODES
            logger.error(
                "ElevenLabs API error %s (retryable=%s): %s",
                resp.status_code,
                retryable,
                resp.text[:500],
            )
            raise GenerationError(
                "tts",
                f"ElevenLabs API error: {resp.status_code} {resp.reason_phrase}",
                retryable=retryable,
                details={"status_code": resp.status_code, "body": resp.text[:500]},
            )

        path = self.output_dir / f"{name}-{uuid.uuid4().hex}.mp3"
        await asyncio.to_thread(self._write, path, resp.content)
        logger.info("Generated audio saved to %s", path)
        return path

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
