"""Event bus: single-topic, at-least-once publish/subscribe log.

Messages are bare UTF-8 blob keys. A subscriber's handler is awaited to
completion before the next message is delivered, and the consumer offset is
committed only after the handler returns, so a handler that raises leaves the
message to be redelivered when the consumer restarts.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.structs import TopicPartition
from aiokafka.errors import KafkaError

from video_pipeline.core.exceptions import PublishError
from video_pipeline.core.logging import log_warning

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str], Awaitable[None]]


def decode_message(value: Optional[bytes]) -> Optional[str]:
    """Decode a raw message value into a blob key.

    Returns:
        The key, or None for an empty or non UTF-8 value
    """
    if not value:
        return None
    try:
        text = value.decode("utf-8").strip()
    except UnicodeDecodeError:
        return None
    return text or None


class EventBus(ABC):
    """Abstract event bus."""

    @abstractmethod
    async def publish(
        self,
        topic: str,
        message: str,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """Append ``message`` to ``topic``.

        Raises:
            PublishError: If the append fails
        """

    @abstractmethod
    async def subscribe(self, topic: str, group_id: str, handler: MessageHandler) -> None:
        """Consume ``topic`` as a member of ``group_id``, one message at a time."""

    async def close(self) -> None:
        """Release broker connections."""

    async def __aenter__(self) -> "EventBus":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class KafkaEventBus(EventBus):
    """Kafka-backed event bus using aiokafka."""

    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str = "videoPipeline",
        from_beginning: bool = True,
    ):
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self.from_beginning = from_beginning
        self._producer: Optional[AIOKafkaProducer] = None

    async def _get_producer(self) -> AIOKafkaProducer:
        """Get or start the shared producer."""
        if self._producer is None:
            producer = AIOKafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.client_id,
                acks="all",
            )
            try:
                await producer.start()
            except BaseException:
                await producer.stop()
                raise
            self._producer = producer
        return self._producer

    async def publish(
        self,
        topic: str,
        message: str,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        kafka_headers = (
            [(name, value.encode("utf-8")) for name, value in headers.items()]
            if headers
            else None
        )
        try:
            producer = await self._get_producer()
            await producer.send_and_wait(
                topic,
                value=message.encode("utf-8"),
                headers=kafka_headers,
            )
        except KafkaError as e:
            raise PublishError(f"Failed to publish to {topic}: {e}", key=message, cause=e) from e
        logger.debug("Published %s to %s", message, topic)

    async def subscribe(self, topic: str, group_id: str, handler: MessageHandler) -> None:
        consumer = AIOKafkaConsumer(
            topic,
            bootstrap_servers=self.bootstrap_servers,
            client_id=self.client_id,
            group_id=group_id,
            enable_auto_commit=False,
            auto_offset_reset="earliest" if self.from_beginning else "latest",
        )
        await consumer.start()
        logger.info("Subscribed to %s as %s", topic, group_id)
        try:
            async for record in consumer:
                message = decode_message(record.value)
                if message is None:
                    log_warning(
                        logger,
                        "Received invalid message",
                        topic=record.topic,
                        partition=record.partition,
                        offset=record.offset,
                    )
                else:
                    await handler(message)
                await consumer.commit(
                    {TopicPartition(record.topic, record.partition): record.offset + 1}
                )
        finally:
            await consumer.stop()

    async def close(self) -> None:
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None


@dataclass
class TopicRecord:
    """One entry of an in-memory topic log."""
    value: str
    headers: dict[str, str] = field(default_factory=dict)


class InMemoryEventBus(EventBus):
    """In-process event bus for tests and local dry runs.

    Keeps one append-only log per topic and one committed offset per
    (topic, group). ``subscribe`` drains whatever is in the log and returns.
    """

    def __init__(self):
        self.logs: dict[str, list[TopicRecord]] = defaultdict(list)
        self.offsets: dict[tuple[str, str], int] = defaultdict(int)

    def messages(self, topic: str) -> list[str]:
        """Payloads published to ``topic``, in order."""
        return [record.value for record in self.logs[topic]]

    async def publish(
        self,
        topic: str,
        message: str,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.logs[topic].append(TopicRecord(value=message, headers=dict(headers or {})))

    async def subscribe(self, topic: str, group_id: str, handler: MessageHandler) -> None:
        log = self.logs[topic]
        position = (topic, group_id)
        while self.offsets[position] < len(log):
            record = log[self.offsets[position]]
            message = decode_message(record.value.encode("utf-8"))
            if message is None:
                log_warning(logger, "Received invalid message", topic=topic, offset=self.offsets[position])
            else:
                await handler(message)
            self.offsets[position] += 1
