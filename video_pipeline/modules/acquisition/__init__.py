"""Acquisition stage: fetch source media, store it, announce it.
"""

from video_pipeline.modules.acquisition.downloader import Downloader, YtDlpDownloader
from video_pipeline.modules.acquisition.worker import AcquisitionReport, AcquisitionWorker

__all__ = [
    "Downloader",
    "YtDlpDownloader",
    "AcquisitionReport",
    "AcquisitionWorker",
]
