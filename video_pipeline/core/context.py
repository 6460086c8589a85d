"""Explicit pipeline context.

Holds the scratch root, blob namespace prefixes and the transcode targets so
workers never read process-wide state. Two contexts with different scratch
roots can run side by side in one process.
"""

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from video_pipeline.core.config import Settings


@dataclass(frozen=True)
class PipelineContext:
    """Configured roots and names shared by both workers."""
    scratch_dir: Path
    originals_prefix: str = "videos"
    encoded_prefix: str = "encoded"
    output_formats: tuple[str, ...] = ("mp4", "avi", "webm", "mkv")
    topic: str = "video-uploads"
    consumer_group: str = "videoProcessor"
    dlq_topic: Optional[str] = None
    skip_existing_outputs: bool = True
    work_list: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.output_formats:
            raise ValueError("At least one output format is required")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineContext":
        """Build a context from application settings."""
        return cls(
            scratch_dir=Path(settings.SCRATCH_DIR),
            originals_prefix=settings.ORIGINALS_PREFIX.strip("/"),
            encoded_prefix=settings.ENCODED_PREFIX.strip("/"),
            output_formats=tuple(dict.fromkeys(f.lstrip(".").lower() for f in settings.OUTPUT_FORMATS)),
            topic=settings.KAFKA_TOPIC,
            consumer_group=settings.KAFKA_CONSUMER_GROUP,
            dlq_topic=settings.KAFKA_DLQ_TOPIC or None,
            skip_existing_outputs=settings.SKIP_EXISTING_OUTPUTS,
            work_list=tuple(settings.WORK_LIST),
        )

    # Scratch layout

    @property
    def downloads_dir(self) -> Path:
        """Scratch directory for acquisition downloads."""
        return self.scratch_dir / "downloads"

    @property
    def originals_dir(self) -> Path:
        """Scratch directory for originals fetched by the transcoding worker."""
        return self.scratch_dir / "originals"

    @property
    def encoded_dir(self) -> Path:
        """Scratch directory for encoder outputs."""
        return self.scratch_dir / "encoded"

    # Blob keys

    def original_key(self, filename: str) -> str:
        """Key for an acquired original, e.g. ``videos/downloaded_video_v1.mp4``."""
        return f"{self.originals_prefix}/{filename}"

    def encoded_key(self, filename: str) -> str:
        """Key for an encoded output, e.g. ``encoded/x.avi``."""
        return f"{self.encoded_prefix}/{filename}"

    def expected_output_keys(self, original_key: str) -> list[str]:
        """Every ``encoded/`` key a successful transcode of ``original_key`` writes."""
        stem = key_stem(original_key)
        return [self.encoded_key(f"{stem}.{fmt}") for fmt in self.output_formats]


def key_basename(key: str) -> str:
    """Last path segment of a blob key."""
    return posixpath.basename(key)


def key_stem(key: str) -> str:
    """Basename of a blob key without its extension."""
    return posixpath.splitext(key_basename(key))[0]


def download_basename(reference: str) -> str:
    """Scratch base name (no extension) for a downloaded source."""
    return f"downloaded_video_{reference}"
