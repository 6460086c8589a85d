"""Transcoding worker.

Handles one pipeline event at a time: fetch the original, encode it into
every configured format concurrently, and store the outputs under
``encoded/<stem>.<format>``. The encode step is all-or-nothing: if any
conversion fails, every local output is removed and nothing is uploaded.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from video_pipeline.core.context import PipelineContext, key_basename
from video_pipeline.core.events import EventBus
from video_pipeline.core.exceptions import EncodeError, TranscodeJoinError
from video_pipeline.core.logging import correlation_scope, log_error, log_info
from video_pipeline.core.metrics import (
    ENCODES_TOTAL,
    TRANSCODE_DURATION_SECONDS,
    TRANSCODES_TOTAL,
)
from video_pipeline.core.storage import BlobStore
from video_pipeline.modules.job.dead_letter import RetryingHandler, Sleep
from video_pipeline.modules.job.retry import RetryConfig
from video_pipeline.modules.transcoding.ffmpeg import Encoder, output_path_for

logger = logging.getLogger(__name__)


@dataclass
class TranscodeResult:
    """Outcome of processing one original."""
    key: str
    outputs: dict[str, str] = field(default_factory=dict)  # format -> encoded key
    skipped: bool = False


class TranscodingWorker:
    """Consumes pipeline events and persists encoded variants."""

    def __init__(
        self,
        context: PipelineContext,
        store: BlobStore,
        encoder: Encoder,
    ):
        self.context = context
        self.store = store
        self.encoder = encoder

    async def process_video(self, key: str) -> TranscodeResult:
        """Fetch, encode and store one original video.

        Args:
            key: Blob key of the original, e.g. ``videos/x.mp4``

        Returns:
            TranscodeResult with the stored output keys

        Raises:
            StoreReadError: If the original cannot be fetched
            TranscodeJoinError: If any conversion fails
            StoreWriteError: If an output cannot be stored
        """
        with correlation_scope(key):
            if self.context.skip_existing_outputs and await self.outputs_exist(key):
                TRANSCODES_TOTAL.labels(outcome="skipped").inc()
                log_info(logger, f"All outputs of {key} already stored, skipping")
                return TranscodeResult(key=key, skipped=True)

            started = time.monotonic()
            try:
                result = await self._process(key)
            except Exception as e:
                TRANSCODES_TOTAL.labels(outcome="failed").inc()
                log_error(logger, f"Processing of {key} failed: {type(e).__name__}", e)
                raise

            TRANSCODES_TOTAL.labels(outcome="completed").inc()
            TRANSCODE_DURATION_SECONDS.observe(time.monotonic() - started)
            log_info(logger, f"Processed {key} into {len(result.outputs)} format(s)", outputs=result.outputs)
            return result

    async def outputs_exist(self, key: str) -> bool:
        """Check whether every expected ``encoded/`` output of ``key`` is stored."""
        for encoded_key in self.context.expected_output_keys(key):
            if not await asyncio.to_thread(self.store.exists, encoded_key):
                return False
        return True

    async def _process(self, key: str) -> TranscodeResult:
        local_original = self.context.originals_dir / key_basename(key)
        try:
            await asyncio.to_thread(self.store.get, key, local_original)
            encoded = await self._encode_all(key, local_original)
            try:
                outputs = await self._upload_all(encoded)
            finally:
                self._discard(encoded.values())
        finally:
            self._discard([local_original])
        return TranscodeResult(key=key, outputs=outputs)

    async def _encode_all(self, key: str, local_original: Path) -> dict[str, Path]:
        """Run every conversion concurrently and join on all of them.

        Waits for every conversion to settle. On any failure all outputs,
        finished or partial, are deleted before TranscodeJoinError is raised.
        """
        formats = self.context.output_formats
        try:
            results = await asyncio.gather(
                *(self._encode_one(local_original, fmt) for fmt in formats),
                return_exceptions=True,
            )
        except BaseException:
            self._discard_outputs(local_original)
            raise

        produced: dict[str, Path] = {}
        errors: list[EncodeError] = []
        for fmt, result in zip(formats, results):
            if isinstance(result, EncodeError):
                errors.append(result)
            elif isinstance(result, BaseException):
                errors.append(EncodeError(f"Conversion to {fmt} aborted: {result!r}", format=fmt, cause=result))
            else:
                produced[fmt] = result

        if errors:
            self._discard_outputs(local_original, produced.values())
            raise TranscodeJoinError(key, errors)

        return produced

    async def _encode_one(self, local_original: Path, fmt: str) -> Path:
        try:
            output = await self.encoder.encode(local_original, fmt, self.context.encoded_dir)
        except EncodeError as e:
            ENCODES_TOTAL.labels(format=fmt, outcome="failed").inc()
            if e.format is None:
                e.format = fmt
            raise
        except Exception as e:
            ENCODES_TOTAL.labels(format=fmt, outcome="failed").inc()
            raise EncodeError(f"Encoder failed for {fmt}: {e}", format=fmt, cause=e) from e
        ENCODES_TOTAL.labels(format=fmt, outcome="succeeded").inc()
        return output

    async def _upload_all(self, encoded: dict[str, Path]) -> dict[str, str]:
        """Store outputs one after another, deleting each local file once stored."""
        outputs: dict[str, str] = {}
        for fmt, local_path in encoded.items():
            encoded_key = self.context.encoded_key(local_path.name)
            await asyncio.to_thread(self.store.put, local_path, encoded_key)
            self._discard([local_path])
            outputs[fmt] = encoded_key
        return outputs

    def _discard_outputs(self, local_original: Path, extra: Iterable[Path] = ()) -> None:
        expected = [
            output_path_for(local_original, fmt, self.context.encoded_dir)
            for fmt in self.context.output_formats
        ]
        self._discard([*expected, *extra])

    @staticmethod
    def _discard(paths) -> None:
        for path in paths:
            try:
                Path(path).unlink()
            except FileNotFoundError:
                pass
            except OSError:
                logger.warning("Failed to remove scratch file %s", path, exc_info=True)

    async def serve(
        self,
        bus: EventBus,
        retry_config: RetryConfig,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Subscribe to the pipeline topic and process events until cancelled."""
        handler = RetryingHandler(
            self.process_video,
            bus,
            retry_config,
            dlq_topic=self.context.dlq_topic,
            sleep=sleep,
        )
        log_info(
            logger,
            f"Transcoding worker listening on {self.context.topic}",
            group_id=self.context.consumer_group,
            formats=list(self.context.output_formats),
        )
        await bus.subscribe(self.context.topic, self.context.consumer_group, handler)
