"""Shared fixtures and test doubles for pipeline tests."""

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from video_pipeline.core.context import PipelineContext
from video_pipeline.core.events import InMemoryEventBus
from video_pipeline.core.exceptions import DownloadError, EncodeError
from video_pipeline.core.storage import LocalBlobStore, StorageConfig
from video_pipeline.modules.acquisition.downloader import Downloader
from video_pipeline.modules.transcoding.ffmpeg import Encoder, output_path_for


class FakeDownloader(Downloader):
    """Writes a small fake media file instead of calling yt-dlp."""

    def __init__(self, failing: Optional[set[str]] = None, extension: str = "mp4"):
        self.failing = failing or set()
        self.extension = extension
        self.calls: list[str] = []

    def download(self, reference: str, base_path: Path) -> Path:
        self.calls.append(reference)
        base_path.parent.mkdir(parents=True, exist_ok=True)
        if reference in self.failing:
            # Leave a partial download behind, like an interrupted yt-dlp run
            Path(f"{base_path}.{self.extension}.part").write_bytes(b"partial")
            raise DownloadError(f"simulated download failure for {reference}", reference=reference)
        path = Path(f"{base_path}.{self.extension}")
        path.write_bytes(f"media:{reference}".encode())
        return path


class FakeEncoder(Encoder):
    """Writes ``<format>:<input bytes>`` as the encoded output.

    Failing formats write a partial output first, then raise, so tests can
    check that partial files are cleaned up. ``max_in_flight`` records the
    highest number of conversions running at once.
    """

    def __init__(self, failing_formats: Optional[set[str]] = None, delay: float = 0.01):
        self.failing_formats = failing_formats or set()
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def encode(self, input_path: Path, format: str, output_dir: Path) -> Path:
        self.calls.append((input_path.name, format))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            output = output_path_for(input_path, format, output_dir)
            source = input_path.read_bytes()
            await asyncio.sleep(self.delay)
            if format in self.failing_formats:
                output.write_bytes(b"partial")
                raise EncodeError(f"simulated encode failure for {format}", format=format)
            output.write_bytes(format.encode() + b":" + source)
            return output
        finally:
            self.in_flight -= 1


class RecordingBlobStore(LocalBlobStore):
    """Local blob store that records every put and get."""

    def __init__(self, config: StorageConfig):
        super().__init__(config)
        self.puts: list[str] = []
        self.gets: list[str] = []

    def put(self, local_path, key: str) -> None:
        self.puts.append(key)
        super().put(local_path, key)

    def get(self, key: str, local_path) -> Path:
        self.gets.append(key)
        return super().get(key, local_path)


def files_under(path: Path) -> list[Path]:
    """Every regular file below ``path``."""
    if not path.exists():
        return []
    return sorted(p for p in path.rglob("*") if p.is_file())


@pytest.fixture
def context(tmp_path: Path) -> PipelineContext:
    return PipelineContext(
        scratch_dir=tmp_path / "scratch",
        output_formats=("mp4", "avi", "webm", "mkv"),
        dlq_topic="video-uploads.dlq",
        work_list=("v1", "v2", "v3"),
    )


@pytest.fixture
def store(tmp_path: Path) -> RecordingBlobStore:
    return RecordingBlobStore(StorageConfig(backend="local", local_path=str(tmp_path / "storage")))


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def files():
    return files_under
