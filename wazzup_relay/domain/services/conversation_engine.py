"""
Conversational engine client.

The agent itself (prompt, model, memory storage) runs in a separate agent
server. The relay only needs two calls: generate replies for a customer
message, and store operator messages in the chat's memory thread.
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from wazzup_relay.core.config import settings
from wazzup_relay.core.exceptions import ExternalServiceException
from wazzup_relay.core.logging import get_logger
from wazzup_relay.domain.models import HistoryRecord

logger = get_logger(__name__)


class ConversationEngine(ABC):
    """Interface of the agent used by the relay orchestrator"""

    @abstractmethod
    async def generate(
        self,
        text: str,
        *,
        chat_id: str,
        metadata: dict[str, Any],
        run_id: str,
    ) -> list[str]:
        """
        Ask the agent to answer a customer message.

        Args:
            text: resolved message text (media already turned into text).
            chat_id: Wazzup chat id, used as the memory thread.
            metadata: message metadata stored with the user turn.
            run_id: idempotency/tracing id of this run.

        Returns:
            Reply texts in send order; empty when the agent produced nothing.
        """

    @abstractmethod
    async def save_history(self, records: list[HistoryRecord]) -> None:
        """Append operator/agent messages to the chats' memory threads"""


def extract_assistant_replies(result: dict[str, Any]) -> list[str]:
    """
    Pull reply texts out of an agent generate response.

    Each assistant message in ``response.uiMessages`` (or ``response.messages``)
    becomes one reply: its text parts, trimmed and joined by newlines. When
    none are found the top-level ``text`` is used.
    """
    replies: list[str] = []

    response = result.get("response")
    candidates: Any = None
    if isinstance(response, dict):
        candidates = response.get("uiMessages") or response.get("messages")

    if isinstance(candidates, list):
        for raw_message in candidates:
            if not isinstance(raw_message, dict) or raw_message.get("role") != "assistant":
                continue
            content = raw_message.get("parts") or raw_message.get("content")
            if not isinstance(content, list):
                continue
            texts = []
            for part in content:
                if not isinstance(part, dict) or part.get("type") != "text":
                    continue
                value = part.get("text")
                if isinstance(value, str) and value.strip():
                    texts.append(value.strip())
            if texts:
                replies.append("\n".join(texts))

    if not replies:
        text = result.get("text")
        if isinstance(text, str) and text.strip():
            replies.append(text.strip())

    return replies


class HttpConversationEngine(ConversationEngine):
    """Agent server reached over its REST API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        agent_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._base_url = (base_url or settings.AGENT_API_URL).rstrip("/")
        self._agent_id = agent_id or settings.AGENT_ID
        self._resource_id = resource_id or settings.AGENT_RESOURCE_ID
        self._timeout_seconds = timeout_seconds or settings.agent_timeout_seconds

    async def _post(self, path: str, body: dict[str, Any], params: Optional[dict] = None) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.post(url, json=body, params=params)
        except httpx.RequestError as e:
            raise ExternalServiceException(
                service_name="agent",
                message=f"agent server request failed: {e}",
                details={"path": path},
            ) from e

        if not response.is_success:
            raise ExternalServiceException(
                service_name="agent",
                message=f"agent server returned status {response.status_code}",
                details={"path": path, "status_code": response.status_code,
                         "response_text": response.text[:500]},
            )

        try:
            return response.json()
        except ValueError:
            return {}

    async def generate(
        self,
        text: str,
        *,
        chat_id: str,
        metadata: dict[str, Any],
        run_id: str,
    ) -> list[str]:
        body = {
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "text", "text": text}],
                    "metadata": metadata,
                }
            ],
            "memory": {"thread": chat_id, "resource": self._resource_id},
            "runId": run_id,
        }
        result = await self._post(f"/api/agents/{self._agent_id}/generate", body)
        return extract_assistant_replies(result)

    def _to_memory_message(self, record: HistoryRecord) -> dict[str, Any]:
        return {
            "id": str(uuid.uuid4()),
            "role": record.role,
            "threadId": record.chat_id,
            "resourceId": self._resource_id,
            "createdAt": record.created_at,
            "type": record.type,
            "content": {
                "format": 2,
                "parts": [{"type": "text", "text": record.text}],
                "metadata": record.metadata.model_dump(by_alias=True),
            },
        }

    async def save_history(self, records: list[HistoryRecord]) -> None:
        if not records:
            return
        await self._post(
            "/api/memory/save-messages",
            {"messages": [self._to_memory_message(r) for r in records]},
            params={"agentId": self._agent_id},
        )
        logger.info("Saved outbound messages to agent memory", extra_data={"count": len(records)})
