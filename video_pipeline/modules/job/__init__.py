"""Consumer job policy: retry with backoff and dead-letter routing."""

from video_pipeline.modules.job.dead_letter import DeadLetterOutcome, RetryingHandler
from video_pipeline.modules.job.retry import RetryConfig

__all__ = [
    "DeadLetterOutcome",
    "RetryingHandler",
    "RetryConfig",
]
