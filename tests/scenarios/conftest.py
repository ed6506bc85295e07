"""
Helpers for end-to-end relay scenarios.

Provides:
- Wazzup webhook payload builders (customer message, operator echo, status update)
- A polling helper that waits for the queue worker to catch up
"""
import asyncio
import itertools
import time
from typing import Any, Awaitable, Callable

from tests.conftest import ALLOWED_CHAT_ID

WEBHOOK_PATH = "/webhooks/wazzup"

_message_ids = itertools.count(1)


def _base(chat_id: str, **fields: Any) -> dict[str, Any]:
    record = {
        "messageId": f"scn-{next(_message_ids)}",
        "chatId": chat_id,
        "channelId": "channel-1",
        "chatType": "whatsapp",
        "type": "text",
        "dateTime": "2024-05-01T10:00:00.000Z",
    }
    record.update(fields)
    return record


def customer_message(text: str, *, chat_id: str = ALLOWED_CHAT_ID) -> dict[str, Any]:
    return _base(chat_id, text=text, status="inbound", isEcho=False)


def operator_message(text: str, *, chat_id: str = ALLOWED_CHAT_ID, author: str = "Менеджер") -> dict[str, Any]:
    """Message typed by a manager in the Wazzup UI (echo with an author)"""
    return _base(chat_id, text=text, status="sent", isEcho=True, authorName=author)


def agent_echo(text: str, *, chat_id: str = ALLOWED_CHAT_ID) -> dict[str, Any]:
    """Wazzup's echo of a reply the relay sent through the API (no author)"""
    return _base(chat_id, text=text, status="sent", isEcho=True)


def status_update(status: str, *, chat_id: str = ALLOWED_CHAT_ID) -> dict[str, Any]:
    return _base(chat_id, status=status, isEcho=True)


async def wait_for(condition: Callable[[], Awaitable[bool]], timeout_seconds: float = 2.0) -> None:
    """Poll ``condition`` until it holds; fails the test on timeout"""
    deadline = time.monotonic() + timeout_seconds
    while not await condition():
        if time.monotonic() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.02)
