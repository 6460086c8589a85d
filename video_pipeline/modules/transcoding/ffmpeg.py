"""FFmpeg transcoding utilities.

Each conversion is a separate ffmpeg process driven through asyncio so the
transcoding worker can run every target format of one video concurrently.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from video_pipeline.core.config import Settings
from video_pipeline.core.exceptions import EncodeError

logger = logging.getLogger(__name__)


def output_path_for(input_path: Path, format: str, output_dir: Path) -> Path:
    """Output file for one conversion: ``<output_dir>/<input-stem>.<format>``."""
    return output_dir / f"{input_path.stem}.{format}"


def trim_tail(s: str, limit: int = 2000) -> str:
    if not s:
        return ""
    return s[-limit:] if len(s) > limit else s


class Encoder(ABC):
    """Converts a local video file into one target container format."""

    @abstractmethod
    async def encode(self, input_path: Path, format: str, output_dir: Path) -> Path:
        """Encode ``input_path`` to ``<output_dir>/<input-stem>.<format>``.

        Returns:
            Path of the produced file

        Raises:
            EncodeError: If the conversion fails
        """


class FFmpegEncoder(Encoder):
    """FFmpeg-based encoder.

    The target container is picked by ffmpeg from the output extension; no
    format-specific codec parameters are passed.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: Optional[float] = None):
        """Initialize encoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            timeout: Seconds before a conversion is killed; None waits forever
        """
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "FFmpegEncoder":
        return cls(ffmpeg_path=settings.FFMPEG_PATH, timeout=settings.ENCODE_TIMEOUT_SECONDS)

    def build_encode_command(self, input_path: Path, output_path: Path) -> list[str]:
        """Build FFmpeg command for one conversion.

        Args:
            input_path: Source video
            output_path: Destination file; its extension selects the container

        Returns:
            FFmpeg command as list of arguments
        """
        return [
            self.ffmpeg_path,
            "-y",  # Overwrite output
            "-hide_banner",
            "-loglevel", "error",
            "-i", str(input_path),
            str(output_path),
        ]

    async def encode(self, input_path: Path, format: str, output_dir: Path) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_path_for(input_path, format, output_dir)
        cmd = self.build_encode_command(input_path, output_path)
        logger.debug("Running %s", " ".join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncodeError(f"Cannot start ffmpeg: {e}", format=format, cause=e) from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            await self._kill(process)
            raise EncodeError(
                f"ffmpeg timed out after {self.timeout}s encoding {format}",
                format=format,
                cause=e,
            ) from e
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        if process.returncode != 0:
            message = trim_tail(stderr.decode("utf-8", errors="replace").strip())
            raise EncodeError(
                f"ffmpeg exited with {process.returncode} encoding {format}: {message}",
                format=format,
            )

        if not output_path.exists():
            raise EncodeError(f"ffmpeg produced no output for {format}", format=format)

        return output_path

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            process.kill()
            await process.wait()
