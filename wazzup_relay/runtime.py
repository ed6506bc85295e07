"""
Process-level wiring of the relay.

RelayRuntime owns the shared Redis connection and every service built on it.
The FastAPI lifespan creates one instance, stores it on ``app.state.runtime``
and closes it on shutdown.
"""
import asyncio
from typing import Any, Callable, Optional

from wazzup_relay.core.config import Settings
from wazzup_relay.core.logging import get_logger
from wazzup_relay.core.redis_client import RedisConnection
from wazzup_relay.domain.services.conversation_engine import ConversationEngine, HttpConversationEngine
from wazzup_relay.domain.services.inbound_filter import resolve_target_chat_ids
from wazzup_relay.domain.services.media_service import MediaService, build_media_service
from wazzup_relay.domain.services.message_queue_service import MessageQueueService
from wazzup_relay.domain.services.relay_service import RelayService
from wazzup_relay.domain.services.stop_flag_service import StopFlagStore
from wazzup_relay.domain.services.wazzup_sender import WazzupSender
from wazzup_relay.domain.services.webhook_service import WebhookService
from wazzup_relay.workers.queue_worker import QueueWorker

logger = get_logger(__name__)


class RelayRuntime:
    """Builds the relay components once and drives the queue worker lifecycle"""

    def __init__(
        self,
        config: Settings,
        *,
        redis_client_factory: Optional[Callable[..., Any]] = None,
        engine: Optional[ConversationEngine] = None,
        media: Optional[MediaService] = None,
        sender: Optional[WazzupSender] = None,
    ) -> None:
        self.config = config
        self.queue_enabled = config.USE_WAZZUP_QUEUE

        # Raises ConfigurationError without REDIS_URL
        self.connection = RedisConnection(
            config.REDIS_URL,
            component="RelayRuntime",
            client_factory=redis_client_factory,
        )
        self.queue = MessageQueueService(
            self.connection,
            queue_prefix=config.WAZZUP_QUEUE_PREFIX,
            max_retries=config.WAZZUP_QUEUE_MAX_RETRIES,
        )
        self.stop_flags = StopFlagStore(self.connection, key_prefix=config.STOP_FLAG_PREFIX)
        self.sender = sender or WazzupSender(
            api_url=config.WAZZUP_MESSAGE_API_URL,
            api_token=config.WAZZUP_API_TOKEN,
            timeout_seconds=config.send_timeout_seconds,
        )
        self.webhook_service = WebhookService(expected_auth_token=config.WAZZUP_WEBHOOK_AUTH_TOKEN)
        self.relay = RelayService(
            engine=engine or HttpConversationEngine(
                base_url=config.AGENT_API_URL,
                agent_id=config.AGENT_ID,
                resource_id=config.AGENT_RESOURCE_ID,
                timeout_seconds=config.agent_timeout_seconds,
            ),
            media=media or build_media_service(),
            sender=self.sender,
            allowed_chat_ids=resolve_target_chat_ids(config.WAZZUP_TARGET_CHAT_IDS),
            agent_timeout_seconds=config.agent_timeout_seconds,
            queue=self.queue if self.queue_enabled else None,
            stop_flags=self.stop_flags,
        )
        self._worker: Optional[QueueWorker] = None

    @property
    def has_worker(self) -> bool:
        return self._worker is not None

    def get_worker(self) -> QueueWorker:
        """The process's queue worker, created on first access"""
        if self._worker is None:
            self._worker = QueueWorker(
                self.queue,
                self.sender,
                poll_timeout_seconds=self.config.WAZZUP_QUEUE_POLL_TIMEOUT_SECONDS,
            )
        return self._worker

    async def start(self) -> None:
        if not self.queue_enabled:
            logger.info("Wazzup queue disabled, replies are sent directly")
            return
        self.get_worker().start()

    async def stop(self) -> None:
        if self._worker is not None:
            await self._worker.stop()

        pending = set(self.relay.background_sends)
        if pending:
            logger.info("Waiting for background sends", extra_data={"count": len(pending)})
            await asyncio.wait(pending, timeout=self.sender.timeout_seconds)

        await self.connection.close()
