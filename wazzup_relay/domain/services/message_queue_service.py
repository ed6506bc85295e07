"""
Outbound message queue backed by two Redis lists.

- ``<prefix>:main`` holds replies waiting to be sent (RPUSH / BLPOP, FIFO)
- ``<prefix>:dead-letters`` holds replies that exhausted their retries

Each record carries an ``attempt`` counter, incremented on every enqueue, and
the ``timestamp`` of its first enqueue.
"""
import time
from typing import Optional

from pydantic import ValidationError

from wazzup_relay.core.exceptions import QueueRecordError
from wazzup_relay.core.logging import get_logger, mask_chat_id
from wazzup_relay.core.redis_client import RedisConnection
from wazzup_relay.domain.models import OutboundMessage, QueueStats
from wazzup_relay.domain.services.stop_flag_service import normalize_key_prefix

logger = get_logger(__name__)

# Length of the raw record excerpt logged for records that fail to decode
RAW_PREVIEW_CHARS = 200


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_queue_record(raw: str) -> OutboundMessage:
    """Decode a Redis list element. Raises QueueRecordError on malformed input."""
    try:
        return OutboundMessage.model_validate_json(raw)
    except ValidationError as e:
        raise QueueRecordError(
            reason=f"{e.error_count()} validation error(s)",
            raw_preview=raw[:RAW_PREVIEW_CHARS],
        ) from e


class MessageQueueService:
    """Durable FIFO of outbound replies with bounded retries"""

    def __init__(
        self,
        connection: RedisConnection,
        queue_prefix: str = "mastra:wazzup-queue",
        max_retries: int = 3,
    ):
        self._connection = connection
        self.queue_prefix = normalize_key_prefix(queue_prefix)
        self.max_retries = max_retries

    @property
    def queue_key(self) -> str:
        return f"{self.queue_prefix}:main"

    @property
    def dead_letter_key(self) -> str:
        return f"{self.queue_prefix}:dead-letters"

    async def enqueue(self, message: OutboundMessage) -> None:
        """Append a message to the main list, bumping its attempt counter"""
        client = await self._connection.get_client()

        record = message.model_copy(update={
            "attempt": (message.attempt or 0) + 1,
            "timestamp": message.timestamp or _now_ms(),
        })
        queue_length = await client.rpush(self.queue_key, record.to_record())

        logger.debug("Message enqueued", extra_data={
            "chat_id": mask_chat_id(message.chat_id),
            "attempt": record.attempt,
            "queue_length": queue_length,
        })

    async def dequeue(self, timeout_seconds: float = 1) -> Optional[OutboundMessage]:
        """
        Pop the oldest message, blocking up to ``timeout_seconds``.

        Returns None when the queue stayed empty. A record that cannot be decoded
        is removed from the queue for good: it is logged and None is returned.
        """
        client = await self._connection.get_client()

        result = await client.blpop([self.queue_key], timeout=timeout_seconds)
        if not result:
            return None

        _, raw = result
        try:
            return parse_queue_record(raw)
        except QueueRecordError as e:
            logger.error("Dropping undecodable queue record", extra_data={
                "queue_key": self.queue_key,
                **e.details,
            })
            return None

    async def retry_message(self, message: OutboundMessage) -> bool:
        """
        Requeue a message after a failed send.

        Returns False when the message already used ``max_retries`` attempts; it
        is then appended to the dead-letter list unchanged.
        """
        client = await self._connection.get_client()

        if (message.attempt or 0) >= self.max_retries:
            logger.warning("Message exceeded max retries, moving to dead letters", extra_data={
                "chat_id": mask_chat_id(message.chat_id),
                "attempt": message.attempt,
                "max_retries": self.max_retries,
            })
            await client.rpush(self.dead_letter_key, message.to_record())
            return False

        # enqueue() increments the counter, so pass the current value through
        await self.enqueue(message.model_copy(update={"attempt": message.attempt or 0}))

        logger.debug("Message requeued for retry", extra_data={
            "chat_id": mask_chat_id(message.chat_id),
            "attempt": message.attempt,
        })
        return True

    async def get_stats(self) -> QueueStats:
        client = await self._connection.get_client()
        return QueueStats(
            queue_length=await client.llen(self.queue_key),
            dead_letter_length=await client.llen(self.dead_letter_key),
        )

    async def get_dead_letters(self, count: int = 10) -> list[OutboundMessage]:
        """First ``count`` dead letters, oldest first. Undecodable entries are skipped."""
        client = await self._connection.get_client()

        items = await client.lrange(self.dead_letter_key, 0, count - 1)
        messages = []
        for raw in items:
            try:
                messages.append(parse_queue_record(raw))
            except QueueRecordError:
                continue
        return messages

    async def clear_dead_letters(self) -> int:
        """Delete the dead-letter list. Returns the number of keys removed (0 or 1)."""
        client = await self._connection.get_client()
        return await client.delete(self.dead_letter_key)

    async def disconnect(self) -> None:
        await self._connection.close()
