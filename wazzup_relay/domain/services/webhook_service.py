"""
Wazzup webhook authorization and payload classification.
"""
import hmac
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import ValidationError

from wazzup_relay.core.exceptions import UnauthorizedWebhookError
from wazzup_relay.core.logging import get_logger
from wazzup_relay.domain.models import InboundMessage, WebhookPayload

logger = get_logger(__name__)


@dataclass
class WebhookResult:
    type: Literal["test", "webhook"]
    messages: list[InboundMessage] = field(default_factory=list)
    inbound_messages: list[InboundMessage] = field(default_factory=list)


def is_inbound(message: InboundMessage) -> bool:
    """Customer message: explicit inbound status, or no status and not an echo"""
    if message.status:
        return message.status == "inbound"
    return not message.is_echo


class WebhookService:
    """Checks the Authorization header and splits a payload into message groups"""

    def __init__(self, expected_auth_token: Optional[str] = None):
        self._expected_auth_token = expected_auth_token or ""

    def authorize(self, authorization: Optional[str]) -> None:
        """
        Accept ``Bearer <token>`` or the bare token.

        No configured token means the endpoint is open.
        """
        if not self._expected_auth_token:
            return

        provided = (authorization or "").strip()
        if provided[:7].lower() == "bearer ":
            provided = provided[7:].strip()

        if not provided or not hmac.compare_digest(
            provided.encode("utf-8"), self._expected_auth_token.encode("utf-8")
        ):
            raise UnauthorizedWebhookError()

    def handle_webhook(self, payload: Any, authorization: Optional[str] = None) -> WebhookResult:
        self.authorize(authorization)

        parsed = WebhookPayload.model_validate(payload)

        if parsed.test:
            logger.info("Received Wazzup test webhook")
            return WebhookResult(type="test")

        messages: list[InboundMessage] = []
        for index, raw in enumerate(parsed.messages):
            try:
                messages.append(InboundMessage.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping invalid Wazzup message record", extra_data={
                    "index": index,
                    "errors": e.error_count(),
                })

        inbound = [m for m in messages if is_inbound(m)]
        logger.info("Received Wazzup webhook", extra_data={
            "messages": len(messages),
            "inbound_messages": len(inbound),
        })
        return WebhookResult(type="webhook", messages=messages, inbound_messages=inbound)
