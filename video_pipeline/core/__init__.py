"""Core module for configuration, storage, events and utilities."""

from video_pipeline.core.config import Settings, settings
from video_pipeline.core.context import PipelineContext
from video_pipeline.core.events import EventBus, InMemoryEventBus, KafkaEventBus
from video_pipeline.core.storage import BlobStore, LocalBlobStore, S3BlobStore, create_blob_store

__all__ = [
    "Settings",
    "settings",
    "PipelineContext",
    "EventBus",
    "InMemoryEventBus",
    "KafkaEventBus",
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "create_blob_store",
]
