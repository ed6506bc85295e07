"""
Domain Services
"""
from wazzup_relay.domain.services.message_queue_service import MessageQueueService
from wazzup_relay.domain.services.relay_service import RelayService
from wazzup_relay.domain.services.stop_flag_service import GateResult, StopFlagStore
from wazzup_relay.domain.services.wazzup_sender import WazzupSender
from wazzup_relay.domain.services.webhook_service import WebhookService

__all__ = [
    "GateResult",
    "MessageQueueService",
    "RelayService",
    "StopFlagStore",
    "WazzupSender",
    "WebhookService",
]
