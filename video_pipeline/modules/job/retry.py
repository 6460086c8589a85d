"""Retry configuration with exponential backoff."""

import math

from video_pipeline.core.config import Settings


class RetryConfig:
    """Configuration for retry behavior with exponential backoff."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 300.0,
        backoff_multiplier: float = 2.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.HANDLER_MAX_ATTEMPTS,
            initial_delay=settings.HANDLER_INITIAL_DELAY,
            max_delay=settings.HANDLER_MAX_DELAY,
            backoff_multiplier=settings.HANDLER_BACKOFF_MULTIPLIER,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt using exponential backoff.

        Args:
            attempt: The current attempt number (1-indexed).

        Returns:
            The delay in seconds, capped at max_delay.
        """
        if attempt < 1:
            return self.initial_delay

        delay = self.initial_delay * math.pow(self.backoff_multiplier, attempt - 1)
        return min(delay, self.max_delay)

    def can_retry(self, attempt: int) -> bool:
        """Check if another attempt is allowed after ``attempt`` failed."""
        return attempt < self.max_attempts
