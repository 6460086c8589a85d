"""Command line entry point.

Usage:
  video-pipeline producer   # Acquire every source in the work list, then exit
  video-pipeline consumer   # Transcode pipeline events until stopped
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Optional, Sequence

from video_pipeline.core.config import Settings, settings as default_settings
from video_pipeline.core.context import PipelineContext
from video_pipeline.core.events import EventBus, KafkaEventBus
from video_pipeline.core.exceptions import UsageError
from video_pipeline.core.logging import setup_logging
from video_pipeline.core.metrics import set_app_info, start_metrics_server
from video_pipeline.core.storage import BlobStore, StorageConfig, create_blob_store
from video_pipeline.modules.acquisition.downloader import Downloader, YtDlpDownloader
from video_pipeline.modules.acquisition.worker import AcquisitionReport, AcquisitionWorker
from video_pipeline.modules.job.retry import RetryConfig
from video_pipeline.modules.transcoding.ffmpeg import Encoder, FFmpegEncoder
from video_pipeline.modules.transcoding.worker import TranscodingWorker

logger = logging.getLogger(__name__)

MODE_PRODUCER = "producer"
MODE_CONSUMER = "consumer"
MODES = (MODE_PRODUCER, MODE_CONSUMER)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting."""

    def error(self, message: str):
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="video-pipeline",
        description="Acquire source videos or transcode them from the event log.",
    )
    parser.add_argument(
        "mode",
        choices=MODES,
        help="producer: run one acquisition batch; consumer: run the transcoding service",
    )
    return parser


def parse_mode(argv: Sequence[str]) -> str:
    """Parse the run mode.

    Raises:
        UsageError: If no mode or an unknown mode is given
    """
    return build_parser().parse_args(list(argv)).mode


def _make_bus(settings: Settings) -> EventBus:
    return KafkaEventBus(
        bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
        client_id=settings.KAFKA_CLIENT_ID,
        from_beginning=settings.KAFKA_FROM_BEGINNING,
    )


async def run_producer(
    settings: Settings,
    downloader: Optional[Downloader] = None,
    store: Optional[BlobStore] = None,
    bus: Optional[EventBus] = None,
) -> AcquisitionReport:
    """Run the acquisition worker once over the configured work list."""
    context = PipelineContext.from_settings(settings)
    worker = AcquisitionWorker(
        context,
        downloader or YtDlpDownloader.from_settings(settings),
        store or create_blob_store(StorageConfig.from_settings(settings)),
        bus or _make_bus(settings),
    )
    async with worker.bus:
        return await worker.run()


async def run_consumer(
    settings: Settings,
    encoder: Optional[Encoder] = None,
    store: Optional[BlobStore] = None,
    bus: Optional[EventBus] = None,
) -> None:
    """Run the transcoding worker until cancelled or SIGTERM."""
    context = PipelineContext.from_settings(settings)
    worker = TranscodingWorker(
        context,
        store or create_blob_store(StorageConfig.from_settings(settings)),
        encoder or FFmpegEncoder.from_settings(settings),
    )
    bus = bus or _make_bus(settings)

    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGTERM, task.cancel)

    try:
        async with bus:
            await worker.serve(bus, RetryConfig.from_settings(settings))
    except asyncio.CancelledError:
        logger.info("Transcoding worker stopped")
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGTERM)


def main(argv: Optional[Sequence[str]] = None, settings: Settings = default_settings) -> int:
    """Run the selected mode and return the process exit status."""
    parser = build_parser()
    try:
        mode = parse_mode(sys.argv[1:] if argv is None else argv)
    except UsageError as e:
        print(f"{parser.format_usage()}error: {e}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    set_app_info(settings.VERSION, "development" if settings.DEBUG else "production")
    start_metrics_server(settings.METRICS_PORT)

    try:
        if mode == MODE_PRODUCER:
            asyncio.run(run_producer(settings))
        else:
            asyncio.run(run_consumer(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception:
        logger.exception("Fatal error in %s mode", mode)
        return EXIT_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
