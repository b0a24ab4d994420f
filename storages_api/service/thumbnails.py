"""Video thumbnail extraction."""

import logging
import subprocess
from typing import Protocol

from storages_api.errors import StorageIOError

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset({"mp4", "mkv", "webm", "mov", "avi"})


class VideoThumbnailer(Protocol):
    def thumbnail(self, real_path: str) -> bytes:
        """Return one JPEG frame of the video at ``real_path``."""
        ...


class FfmpegThumbnailer:
    """Grab the frame at 00:00:01 by piping ffmpeg's mjpeg output."""

    def __init__(self, ffmpeg: str = "ffmpeg", timeout: float = 30.0):
        self.ffmpeg = ffmpeg
        self.timeout = timeout

    def command(self, real_path: str) -> list[str]:
        return [
            self.ffmpeg,
            "-ss", "00:00:01",
            "-i", real_path,
            "-vframes", "1",
            "-f", "mjpeg",
            "-q:v", "5",
            "pipe:1",
        ]  # fmt: skip

    def thumbnail(self, real_path: str) -> bytes:
        try:
            result = subprocess.run(
                self.command(real_path),
                capture_output=True,
                check=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Thumbnail error for {real_path}: {e}")
            raise StorageIOError(f"thumbnail extraction failed for {real_path}") from e

        if not result.stdout:
            raise StorageIOError(f"ffmpeg produced no frame for {real_path}")
        return result.stdout
