"""Acquisition worker.

Batch job: for every source reference in the work list, in order, download
the media to scratch, store it under ``videos/<name>``, publish the key, and
remove the scratch file. A failing item is logged and skipped; nothing is
retried.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from video_pipeline.core.context import PipelineContext, download_basename
from video_pipeline.core.events import EventBus
from video_pipeline.core.exceptions import DownloadError, PipelineError
from video_pipeline.core.logging import correlation_scope, log_error, log_info
from video_pipeline.core.metrics import ACQUISITIONS_TOTAL
from video_pipeline.core.storage import BlobStore
from video_pipeline.modules.acquisition.downloader import Downloader, scratch_files

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionReport:
    """Outcome of one batch run."""
    acquired: dict[str, str] = field(default_factory=dict)  # reference -> blob key
    failed: dict[str, str] = field(default_factory=dict)  # reference -> error

    @property
    def total(self) -> int:
        return len(self.acquired) + len(self.failed)


class AcquisitionWorker:
    """Fetches source media and hands it to the transcoding stage."""

    def __init__(
        self,
        context: PipelineContext,
        downloader: Downloader,
        store: BlobStore,
        bus: EventBus,
    ):
        self.context = context
        self.downloader = downloader
        self.store = store
        self.bus = bus

    async def acquire(self, reference: str) -> str:
        """Acquire one source reference.

        Returns:
            The blob key that was stored and published

        Raises:
            DownloadError, StoreWriteError, PublishError
        """
        base_path = self.context.downloads_dir / download_basename(reference)
        try:
            local_path = await self._download(reference, base_path)
            key = self.context.original_key(local_path.name)
            await asyncio.to_thread(self.store.put, local_path, key)
            await self.bus.publish(self.context.topic, key)
            return key
        finally:
            self._remove_scratch(base_path)

    async def _download(self, reference: str, base_path: Path) -> Path:
        try:
            return await asyncio.to_thread(self.downloader.download, reference, base_path)
        except DownloadError:
            raise
        except Exception as e:
            raise DownloadError(f"Downloader failed for {reference}: {e}", reference=reference, cause=e) from e

    def _remove_scratch(self, base_path: Path) -> None:
        for path in scratch_files(base_path):
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError:
                logger.warning("Failed to remove scratch file %s", path, exc_info=True)

    async def run(self, work_list: Optional[Iterable[str]] = None) -> AcquisitionReport:
        """Acquire every reference sequentially, skipping failures.

        Args:
            work_list: References to acquire; defaults to the context's list

        Returns:
            AcquisitionReport with per-reference outcomes
        """
        references = list(self.context.work_list if work_list is None else work_list)
        report = AcquisitionReport()
        log_info(logger, f"Starting acquisition of {len(references)} reference(s)")

        for reference in references:
            with correlation_scope(reference):
                try:
                    key = await self.acquire(reference)
                except PipelineError as e:
                    report.failed[reference] = str(e)
                    ACQUISITIONS_TOTAL.labels(outcome="failed").inc()
                    log_error(logger, f"Error acquiring {reference}: {type(e).__name__}", e)
                    continue
                except Exception as e:
                    report.failed[reference] = str(e)
                    ACQUISITIONS_TOTAL.labels(outcome="failed").inc()
                    log_error(logger, f"Unexpected error acquiring {reference}", e)
                    continue

                report.acquired[reference] = key
                ACQUISITIONS_TOTAL.labels(outcome="acquired").inc()
                log_info(logger, f"Acquired {reference} as {key}", key=key)

        log_info(
            logger,
            f"Acquisition finished: {len(report.acquired)} acquired, {len(report.failed)} failed",
        )
        return report
