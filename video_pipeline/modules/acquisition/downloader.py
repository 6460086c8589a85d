"""Source media downloader.

The acquisition worker only depends on the ``Downloader`` interface; the
yt-dlp implementation is the production one.
"""

import glob
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import yt_dlp

from video_pipeline.core.config import Settings
from video_pipeline.core.exceptions import DownloadError

logger = logging.getLogger(__name__)

# Leftovers yt-dlp writes while a download is in flight
_PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp")


class Downloader(ABC):
    """Fetches the media named by a source reference."""

    @abstractmethod
    def download(self, reference: str, base_path: Path) -> Path:
        """Download ``reference`` to ``<base_path>.<ext>``.

        Args:
            reference: Source reference (catalog id)
            base_path: Scratch path without extension

        Returns:
            Path of the produced media file

        Raises:
            DownloadError: If no media file could be produced
        """


def scratch_files(base_path: Path) -> list[Path]:
    """Every file named ``<base_path>.*``, partial downloads included."""
    if not base_path.parent.exists():
        return []
    return [p for p in base_path.parent.glob(f"{glob.escape(base_path.name)}.*") if p.is_file()]


class YtDlpDownloader(Downloader):
    """Downloader backed by the yt-dlp library."""

    def __init__(
        self,
        url_template: str = "https://www.youtube.com/watch?v={reference}",
        format_spec: str = "bv*[height<=720][ext=mp4]+ba[ext=m4a]/b[height<=720]/b",
        proxy: Optional[str] = None,
        merge_output_format: str = "mp4",
    ):
        self.url_template = url_template
        self.format_spec = format_spec
        self.proxy = proxy
        self.merge_output_format = merge_output_format

    @classmethod
    def from_settings(cls, settings: Settings) -> "YtDlpDownloader":
        return cls(
            url_template=settings.SOURCE_URL_TEMPLATE,
            format_spec=settings.YTDLP_FORMAT,
            proxy=settings.YTDLP_PROXY,
        )

    def source_url(self, reference: str) -> str:
        return self.url_template.format(reference=reference)

    def build_options(self, base_path: Path) -> dict:
        ydl_opts = {
            "format": self.format_spec,
            "outtmpl": f"{base_path}.%(ext)s",
            "merge_output_format": self.merge_output_format,
            "noplaylist": True,
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
        }

        # Add proxy if configured (needed for cloud VMs where YouTube blocks requests)
        if self.proxy:
            ydl_opts["proxy"] = self.proxy

        return ydl_opts

    def download(self, reference: str, base_path: Path) -> Path:
        base_path.parent.mkdir(parents=True, exist_ok=True)
        url = self.source_url(reference)
        logger.info("Downloading %s with yt-dlp", url)

        try:
            with yt_dlp.YoutubeDL(self.build_options(base_path)) as ydl:
                ydl.download([url])
        except (yt_dlp.utils.YoutubeDLError, OSError) as e:
            raise DownloadError(f"yt-dlp failed for {url}: {e}", reference=reference, cause=e) from e

        media_files = [
            p for p in scratch_files(base_path) if p.suffix not in _PARTIAL_SUFFIXES
        ]
        if not media_files:
            raise DownloadError(f"No media file found after yt-dlp download of {url}", reference=reference)

        # Use the largest file as the main content
        return max(media_files, key=lambda p: p.stat().st_size)
