"""
Video muxing with ffmpeg.

The template video stream is copied untouched; the synthesized voice is
delayed to the insertion point and mixed over the template's own audio.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import List, Optional

from app.core.config import settings
from app.errors import GenerationError
from app.utils.timecode import insertion_offset_seconds

logger = logging.getLogger(__name__)


def default_insertion_offset() -> float:
    return insertion_offset_seconds(
        settings.VIDEO_START_TIMECODE,
        settings.AUDIO_INSERT_TIMECODE,
        settings.VIDEO_FPS,
    )


def build_mux_command(
    ffmpeg: str,
    base_media: Path,
    audio_path: Path,
    output_path: Path,
    offset_seconds: float,
) -> List[str]:
    delay_ms = int(round(offset_seconds * 1000))
    audio_filter = (
        f"[1:a]adelay={delay_ms}|{delay_ms}[voice];"
        "[0:a][voice]amix=inputs=2:duration=first:dropout_transition=0:normalize=0[aout]"
    )
    return [
        ffmpeg,
        "-hide_banner",
        "-loglevel", "error",
        "-i", str(base_media),
        "-i", str(audio_path),
        "-filter_complex", audio_filter,
        "-map", "0:v:0",
        "-map", "[aout]",
        "-c:v", "copy",
        "-c:a", "aac",
        "-y",
        str(output_path),
    ]


class VideoService:
    """Runs ffmpeg to produce the personalized video."""

    def __init__(
        self,
        base_media: Optional[Path] = None,
        output_dir: Optional[Path] = None,
        ffmpeg: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.base_media = Path(base_media or settings.SOURCE_VIDEO_PATH)
        self.output_dir = Path(output_dir or Path(settings.TEMP_DIR) / "video")
        self.ffmpeg = ffmpeg or settings.FFMPEG_BINARY
        self.timeout = timeout or settings.FFMPEG_TIMEOUT_SECONDS

    async def mux(self, audio_path: Path, offset_seconds: Optional[float] = None) -> Path:
        """
        Mix ``audio_path`` into the template at ``offset_seconds``.

        Raises:
            GenerationError: if ffmpeg cannot start, times out or exits non-zero
        """
        offset = default_insertion_offset() if offset_seconds is None else offset_seconds
        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.output_dir / f"{Path(audio_path).stem}-{uuid.uuid4().hex[:8]}.mp4"
        cmd = build_mux_command(self.ffmpeg, self.base_media, Path(audio_path), output_path, offset)

        logger.debug("Running ffmpeg: %s", " ".join(cmd))
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("Failed to start ffmpeg process: %s", exc)
            raise GenerationError("video", f"Failed to start ffmpeg: {exc}", retryable=False) from exc

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise GenerationError("video", f"ffmpeg timed out after {self.timeout}s") from exc

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()[-1000:]
            logger.error("ffmpeg exited with code %s: %s", process.returncode, message)
            raise GenerationError(
                "video",
                f"ffmpeg process exited with code {process.returncode}",
                details={"stderr": message},
            )

        logger.info("Video rendered to %s (voice at %.2fs)", output_path, offset)
        return output_path
