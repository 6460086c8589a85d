"""Consumer failure policy: bounded retries, then dead-letter.

Wraps a message handler so that a failing event is retried with exponential
backoff and, once attempts are exhausted, its blob key is published to a
dead-letter topic. The wrapped handler then returns normally, which lets the
event bus commit the offset and move on to the next message.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from video_pipeline.core.events import EventBus, MessageHandler
from video_pipeline.core.logging import log_error, log_warning
from video_pipeline.core.metrics import DEAD_LETTERED_TOTAL, HANDLER_RETRIES_TOTAL
from video_pipeline.modules.job.retry import RetryConfig

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Dead-letter header values are capped so a huge stderr tail does not bloat the log
_MAX_ERROR_HEADER_LENGTH = 1000


@dataclass
class DeadLetterOutcome:
    """Last dead-letter routing decision, kept for inspection."""
    key: str
    attempts: int
    error: str


class RetryingHandler:
    """Message handler wrapper with retry and dead-letter routing.

    Args:
        handler: The handler to protect
        bus: Event bus used to publish dead-lettered keys
        retry_config: Attempt budget and backoff
        dlq_topic: Dead-letter topic; None re-raises the last error instead
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        handler: MessageHandler,
        bus: EventBus,
        retry_config: RetryConfig,
        dlq_topic: Optional[str] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.handler = handler
        self.bus = bus
        self.retry_config = retry_config
        self.dlq_topic = dlq_topic
        self._sleep = sleep
        self.last_dead_letter: Optional[DeadLetterOutcome] = None

    async def __call__(self, key: str) -> None:
        attempt = 0
        while True:
            attempt += 1
            try:
                await self.handler(key)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self.retry_config.can_retry(attempt):
                    delay = self.retry_config.calculate_delay(attempt)
                    HANDLER_RETRIES_TOTAL.inc()
                    log_warning(
                        logger,
                        f"Handler failed for {key}, retrying in {delay:.1f}s",
                        attempt=attempt,
                        max_attempts=self.retry_config.max_attempts,
                        error=str(e),
                    )
                    await self._sleep(delay)
                    continue

                if self.dlq_topic is None:
                    log_error(logger, f"Handler failed for {key}, no dead-letter topic", e, attempts=attempt)
                    raise

                await self._dead_letter(key, attempt, e)
                return

    async def _dead_letter(self, key: str, attempts: int, error: Exception) -> None:
        error_text = str(error)[-_MAX_ERROR_HEADER_LENGTH:]
        await self.bus.publish(
            self.dlq_topic,
            key,
            headers={"error": error_text, "attempts": str(attempts)},
        )
        DEAD_LETTERED_TOTAL.inc()
        self.last_dead_letter = DeadLetterOutcome(key=key, attempts=attempts, error=error_text)
        log_error(
            logger,
            f"Moved {key} to {self.dlq_topic} after {attempts} attempt(s)",
            error,
            dlq_topic=self.dlq_topic,
        )
