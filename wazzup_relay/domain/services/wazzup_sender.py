"""
Wazzup send API client.

Used by the queue worker and by the direct-send fallback. A failed send
raises TransientDeliveryError; the queue worker turns it into a retry.
"""
import asyncio
from typing import Optional

import httpx

from wazzup_relay.core.config import settings
from wazzup_relay.core.exceptions import TransientDeliveryError
from wazzup_relay.core.logging import get_logger, mask_chat_id
from wazzup_relay.domain.models import OutboundMessage

logger = get_logger(__name__)


class WazzupSender:
    """POST /v3/message with a bearer token, bounded by the send timeout"""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._api_url = api_url or settings.WAZZUP_MESSAGE_API_URL
        self._api_token = settings.WAZZUP_API_TOKEN if api_token is None else api_token
        self._timeout_seconds = timeout_seconds or settings.send_timeout_seconds

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    async def _post(self, message: OutboundMessage) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            return await client.post(
                self._api_url,
                json=message.to_send_body(),
                headers={"Authorization": f"Bearer {self._api_token}"},
            )

    async def deliver(self, message: OutboundMessage) -> None:
        """Send one message. Raises TransientDeliveryError on any failure."""
        if not self._api_token:
            raise TransientDeliveryError(
                "WAZZUP_API_TOKEN is not configured",
                details={"configured": False},
            )

        try:
            response = await asyncio.wait_for(self._post(message), timeout=self._timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise TransientDeliveryError(
                f"send timeout after {self._timeout_seconds}s",
                details={"timeout": True, "timeout_seconds": self._timeout_seconds},
            )
        except httpx.RequestError as exc:
            raise TransientDeliveryError(
                f"network error: {exc}",
                details={"network_error": True},
            ) from exc

        if not response.is_success:
            raise TransientDeliveryError.from_response(response)

    async def send(self, message: OutboundMessage) -> bool:
        """Send one message and report the outcome instead of raising"""
        try:
            await self.deliver(message)
        except TransientDeliveryError as e:
            logger.error("Wazzup send failed", extra_data={
                "chat_id": mask_chat_id(message.chat_id),
                "error": e.message,
                **e.details,
            })
            return False

        logger.info("Message sent to Wazzup", extra_data={
            "chat_id": mask_chat_id(message.chat_id),
            "ref_message_id": message.ref_message_id,
        })
        return True
