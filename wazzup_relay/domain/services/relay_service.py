"""
Relay orchestration - from a parsed webhook batch to agent replies.

Inbound customer messages go through the inbound filter, the stop-flag
gate and the agent; every reply is enqueued for the queue worker (or sent
directly when the queue is off or unavailable). Outbound messages reported by
Wazzup are stored as conversation history, except operator /stop and /start
commands, which toggle the stop flag instead.
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional

from wazzup_relay.core.exceptions import EngineTimeoutError
from wazzup_relay.core.logging import get_logger, mask_chat_id
from wazzup_relay.domain.models import (
    HistoryMetadata,
    HistoryRecord,
    InboundMessage,
    OutboundMessage,
)
from wazzup_relay.domain.services.conversation_engine import ConversationEngine
from wazzup_relay.domain.services.inbound_filter import (
    match_operator_command,
    resolve_message_text,
    resolve_outbound_text,
    resolve_source,
    should_handle,
    should_persist_outbound,
)
from wazzup_relay.domain.services.media_service import MediaService
from wazzup_relay.domain.services.message_queue_service import MessageQueueService
from wazzup_relay.domain.services.stop_flag_service import StopFlagStore, apply_gate_action
from wazzup_relay.domain.services.wazzup_sender import WazzupSender

logger = get_logger(__name__)

# Reply text preview length in logs
_PREVIEW_CHARS = 200


def _created_at(message: InboundMessage) -> str:
    """Message dateTime as ISO-8601, or now when missing or unparsable"""
    if message.date_time:
        try:
            return datetime.fromisoformat(message.date_time.replace("Z", "+00:00")).isoformat()
        except ValueError:
            pass
    return datetime.now(timezone.utc).isoformat()


class RelayService:
    """
    Per-process relay orchestrator.

    Holds no per-request state; the runtime builds one instance and the
    webhook route calls it for every batch.
    """

    def __init__(
        self,
        *,
        engine: ConversationEngine,
        media: MediaService,
        sender: WazzupSender,
        allowed_chat_ids: list[str],
        agent_timeout_seconds: float,
        queue: Optional[MessageQueueService] = None,
        stop_flags: Optional[StopFlagStore] = None,
    ) -> None:
        self._engine = engine
        self._media = media
        self._sender = sender
        self._allowed_chat_ids = allowed_chat_ids
        self._agent_timeout_seconds = agent_timeout_seconds
        self._queue = queue
        self._stop_flags = stop_flags
        # Detached direct sends; referenced here only so they are not garbage collected
        self._background_sends: set[asyncio.Task] = set()

    @property
    def allowed_chat_ids(self) -> list[str]:
        return self._allowed_chat_ids

    @property
    def background_sends(self) -> set[asyncio.Task]:
        return self._background_sends

    # ── replies ──

    async def _send_directly(self, payload: OutboundMessage) -> None:
        logger.info("Sending reply directly to Wazzup", extra_data={
            "chat_id": mask_chat_id(payload.chat_id),
            "text_preview": payload.text[:_PREVIEW_CHARS],
        })
        await self._sender.send(payload)

    async def send_reply(self, payload: OutboundMessage) -> None:
        """
        Hand a reply to the outbound path.

        With the queue enabled the reply is enqueued; if that fails a direct
        send is started in the background so the webhook response is not held
        up. Without the queue the direct send is awaited. Never raises.
        """
        if self._queue is None:
            await self._send_directly(payload)
            return

        try:
            await self._queue.enqueue(payload)
        except Exception as e:
            logger.error("Failed to enqueue reply, falling back to direct send", extra_data={
                "chat_id": mask_chat_id(payload.chat_id),
                "error": str(e),
                "error_type": type(e).__name__,
            }, exc_info=True)
            task = asyncio.create_task(self._send_directly(payload))
            self._background_sends.add(task)
            task.add_done_callback(self._background_sends.discard)
            return

        logger.info("Reply enqueued", extra_data={
            "chat_id": mask_chat_id(payload.chat_id),
            "text_preview": payload.text[:_PREVIEW_CHARS],
        })

    # ── inbound ──

    async def _is_stopped(self, chat_id: str) -> bool:
        if self._stop_flags is None:
            return False
        result = await apply_gate_action(self._stop_flags, "check", chat_id)
        if not result.ok:
            # Store outage: keep answering customers
            return False
        return bool(result.stopped)

    async def _generate(self, message: InboundMessage, text: str) -> list[str]:
        try:
            return await asyncio.wait_for(
                self._engine.generate(
                    text,
                    chat_id=message.chat_id,
                    metadata={
                        "userId": message.chat_id,
                        "wazzupMessageId": message.message_id,
                        "wazzupChannelId": message.channel_id,
                        "wazzupChatType": message.chat_type,
                    },
                    run_id=f"wazzup-{message.message_id}",
                ),
                timeout=self._agent_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise EngineTimeoutError(self._agent_timeout_seconds)

    async def process_inbound_message(self, message: InboundMessage) -> None:
        """Run one inbound message through filter, gate, agent and send. Never raises."""
        if not should_handle(message, self._allowed_chat_ids):
            return

        if not message.chat_id or not message.channel_id or not message.chat_type:
            logger.warning("Skipping Wazzup message without chatId, channelId or chatType", extra_data={
                "message_id": message.message_id,
            })
            return

        if await self._is_stopped(message.chat_id):
            logger.info("Chat is stopped by an operator, skipping agent reply", extra_data={
                "message_id": message.message_id,
                "chat_id": mask_chat_id(message.chat_id),
            })
            return

        text = await resolve_message_text(message, self._media)
        if not text:
            logger.debug("No text could be resolved from Wazzup message", extra_data={
                "message_id": message.message_id,
                "type": message.type,
            })
            return

        logger.info("Passing inbound message to agent", extra_data={
            "message_id": message.message_id,
            "chat_id": mask_chat_id(message.chat_id),
            "timeout_seconds": self._agent_timeout_seconds,
        })

        try:
            replies = await self._generate(message, text)
        except EngineTimeoutError as e:
            logger.error("Agent processing timeout exceeded", extra_data={
                "message_id": message.message_id,
                **e.details,
            })
            return
        except Exception as e:
            logger.error("Agent failed to process Wazzup message", extra_data={
                "message_id": message.message_id,
                "error": str(e),
                "error_type": type(e).__name__,
            }, exc_info=True)
            return

        if not replies:
            logger.warning("Agent returned an empty reply, nothing to send", extra_data={
                "message_id": message.message_id,
            })
            return

        for reply in replies:
            await self.send_reply(OutboundMessage(
                channel_id=message.channel_id,
                chat_type=message.chat_type,
                chat_id=message.chat_id,
                text=reply,
            ))

    async def process_inbound_messages(self, messages: list[InboundMessage]) -> None:
        """Sequential, in payload order, so replies keep the conversation order"""
        for message in messages:
            await self.process_inbound_message(message)

    # ── outbound / history ──

    async def _handle_operator_command(self, message: InboundMessage, command: str) -> None:
        if self._stop_flags is None:
            logger.warning("Operator command ignored, stop flags are not configured", extra_data={
                "command": command,
                "chat_id": mask_chat_id(message.chat_id),
            })
            return
        result = await apply_gate_action(self._stop_flags, command, message.chat_id)
        if result.ok:
            logger.info("Operator command applied", extra_data={
                "command": command,
                "chat_id": mask_chat_id(message.chat_id),
                "message_id": message.message_id,
            })

    async def persist_outbound_messages(self, messages: list[InboundMessage]) -> None:
        """Store sent operator/agent messages as history and apply operator commands. Never raises."""
        outbound = [
            m for m in messages
            if should_persist_outbound(m) and m.chat_id in self._allowed_chat_ids
        ]
        if not outbound:
            return

        records: list[HistoryRecord] = []
        for message in outbound:
            text = resolve_outbound_text(message)
            if not text:
                logger.debug("Skipping outbound message without text or content", extra_data={
                    "message_id": message.message_id,
                    "status": message.status,
                })
                continue

            source = resolve_source(message)
            if source == "manager":
                command = match_operator_command(text)
                if command:
                    await self._handle_operator_command(message, command)
                    continue

            records.append(HistoryRecord(
                chat_id=message.chat_id,
                text=text,
                created_at=_created_at(message),
                type=message.type or "text",
                metadata=HistoryMetadata(
                    source=source,
                    message_id=message.message_id,
                    channel_id=message.channel_id,
                    chat_type=message.chat_type,
                    status=message.status,
                    is_echo=message.is_echo,
                    author_name=message.author_name,
                    content_uri=message.content_uri,
                ),
            ))

        if not records:
            return

        try:
            await self._engine.save_history(records)
        except Exception as e:
            logger.error("Failed to save outbound messages to agent memory", extra_data={
                "count": len(records),
                "error": str(e),
                "error_type": type(e).__name__,
            }, exc_info=True)
