"""
Outbound queue worker.

A single asyncio task drains the Redis queue: blocking pop, send to Wazzup,
and on failure requeue or dead-letter. It runs in the web process next to the
webhook handlers and is started and stopped by the app lifespan.
"""
import asyncio
from typing import Any, Optional

from wazzup_relay.core.exceptions import TransientDeliveryError
from wazzup_relay.core.logging import get_logger, mask_chat_id, set_correlation_id
from wazzup_relay.domain.models import OutboundMessage
from wazzup_relay.domain.services.message_queue_service import MessageQueueService
from wazzup_relay.domain.services.wazzup_sender import WazzupSender

logger = get_logger(__name__)

# Pause after a loop-level failure (e.g. Redis unreachable) before polling again
ERROR_BACKOFF_SECONDS = 1.0


class QueueWorker:
    """Consumer loop for the outbound queue"""

    def __init__(
        self,
        queue: MessageQueueService,
        sender: WazzupSender,
        poll_timeout_seconds: float = 1.0,
        error_backoff_seconds: float = ERROR_BACKOFF_SECONDS,
    ) -> None:
        self._queue = queue
        self._sender = sender
        self._poll_timeout_seconds = poll_timeout_seconds
        self._error_backoff_seconds = error_backoff_seconds
        self._is_running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def queue(self) -> MessageQueueService:
        return self._queue

    def start(self) -> None:
        """Spawn the consumer loop. A second call while running only logs a warning."""
        if self._is_running:
            logger.warning("Queue worker is already running")
            return

        self._is_running = True
        self._task = asyncio.create_task(self._run(), name="wazzup-queue-worker")
        logger.info("Queue worker started", extra_data={
            "poll_timeout_seconds": self._poll_timeout_seconds,
        })

    async def stop(self) -> None:
        """Stop polling, wait for the in-flight iteration, then close the queue connection"""
        if not self._is_running:
            return

        self._is_running = False
        logger.info("Stopping queue worker...")

        if self._task is not None:
            await self._task
            self._task = None

        await self._queue.disconnect()
        logger.info("Queue worker stopped")

    async def _run(self) -> None:
        while self._is_running:
            try:
                message = await self._queue.dequeue(self._poll_timeout_seconds)
                if message is None:
                    continue
                await self.process_message(message)
            except Exception as e:
                logger.error("Queue processing error", extra_data={
                    "error": str(e),
                    "error_type": type(e).__name__,
                }, exc_info=True)
                await asyncio.sleep(self._error_backoff_seconds)

    async def process_message(self, message: OutboundMessage) -> None:
        """Send one dequeued message; requeue or dead-letter it on failure"""
        set_correlation_id()
        chat_id = mask_chat_id(message.chat_id)

        try:
            logger.info("Processing queued message", extra_data={
                "chat_id": chat_id,
                "attempt": message.attempt,
            })

            try:
                await self._sender.deliver(message)
            except TransientDeliveryError as e:
                logger.warning("Wazzup send failed", extra_data={
                    "chat_id": chat_id,
                    "attempt": message.attempt,
                    "error": e.message,
                    **e.details,
                })
            else:
                logger.info("Message sent to Wazzup", extra_data={
                    "chat_id": chat_id,
                    "ref_message_id": message.ref_message_id,
                })
                return

            if await self._queue.retry_message(message):
                logger.warning("Message requeued for another attempt", extra_data={
                    "chat_id": chat_id,
                    "attempt": message.attempt,
                })
            else:
                logger.error("Message moved to dead letters", extra_data={
                    "chat_id": chat_id,
                    "attempt": message.attempt,
                })
        except Exception as e:
            logger.error("Error while processing queued message", extra_data={
                "chat_id": chat_id,
                "error": str(e),
                "error_type": type(e).__name__,
            }, exc_info=True)
            try:
                await self._queue.retry_message(message)
            except Exception as retry_error:
                logger.error("Failed to requeue message after processing error", extra_data={
                    "chat_id": chat_id,
                    "error": str(retry_error),
                }, exc_info=True)

    async def get_stats(self) -> dict[str, Any]:
        stats = await self._queue.get_stats()
        return {
            "is_running": self._is_running,
            "queue_length": stats.queue_length,
            "dead_letter_length": stats.dead_letter_length,
        }
