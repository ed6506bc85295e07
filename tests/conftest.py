"""
Pytest Configuration and Fixtures

Provides fixtures for:
- In-memory Redis (FakeRedis) behind RedisConnection
- Fake agent engine and Wazzup sender
- RelayRuntime wired to the fakes and an ASGI test client
- Wazzup message factories
"""
import asyncio
import time
from typing import Any, Optional
from unittest.mock import patch

import pytest

from wazzup_relay.core.config import Settings, settings
from wazzup_relay.core.exceptions import TransientDeliveryError
from wazzup_relay.domain.models import HistoryRecord, OutboundMessage
from wazzup_relay.domain.services.conversation_engine import ConversationEngine
from wazzup_relay.domain.services.media_service import MediaService
from wazzup_relay.domain.services.wazzup_sender import WazzupSender
from wazzup_relay.main import app
from wazzup_relay.runtime import RelayRuntime

ALLOWED_CHAT_ID = "77066318623"
OTHER_ALLOWED_CHAT_ID = "77475318623"
UNKNOWN_CHAT_ID = "79990001122"
TEST_ADMIN_API_KEY = "test-admin-api-key"


class FakeRedis:
    """In-memory Redis replacement with the subset of commands the relay uses"""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._lists: dict[str, list[str]] = {}
        self.closed = False
        self.ping_calls = 0

    async def ping(self) -> bool:
        self.ping_calls += 1
        return True

    # ── strings ──

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self._store:
            return None
        self._store[key] = value
        return True

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if key in self._store or key in self._lists)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
            if self._lists.pop(key, None) is not None:
                removed += 1
        return removed

    # ── lists ──

    async def rpush(self, key: str, *values: str) -> int:
        items = self._lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def llen(self, key: str) -> int:
        return len(self._lists.get(key, []))

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        items = self._lists.get(key, [])
        if end == -1:
            return items[start:]
        return items[start:end + 1]

    async def blpop(self, keys: list[str], timeout: float = 0) -> Optional[tuple[str, str]]:
        """BLPOP: polls until an element shows up or the timeout elapses"""
        deadline = time.monotonic() + timeout
        while True:
            for key in keys:
                items = self._lists.get(key)
                if items:
                    value = items.pop(0)
                    if not items:
                        del self._lists[key]
                    return key, value
            if time.monotonic() >= deadline:
                return None
            await asyncio.sleep(0.01)

    def list_items(self, key: str) -> list[str]:
        return list(self._lists.get(key, []))

    async def aclose(self) -> None:
        self.closed = True


class ReadFailsRedis(FakeRedis):
    """Writes succeed, list reads fail: a backend that drops right after RPUSH"""

    async def llen(self, key: str) -> int:
        raise ConnectionError("connection lost after write")

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        raise ConnectionError("connection lost after write")


class FakeEngine(ConversationEngine):
    """Agent stand-in: returns canned replies and records every call"""

    def __init__(self, replies: Optional[list[str]] = None) -> None:
        self.replies = ["Здравствуйте! Чем могу помочь?"] if replies is None else replies
        self.generate_calls: list[dict[str, Any]] = []
        self.saved_history: list[HistoryRecord] = []
        self.delay_seconds = 0.0
        self.error: Optional[Exception] = None

    async def generate(self, text: str, *, chat_id: str, metadata: dict[str, Any], run_id: str) -> list[str]:
        self.generate_calls.append({"text": text, "chat_id": chat_id, "metadata": metadata, "run_id": run_id})
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return list(self.replies)

    async def save_history(self, records: list[HistoryRecord]) -> None:
        if self.error is not None:
            raise self.error
        self.saved_history.extend(records)


class FakeMedia(MediaService):
    def __init__(self, transcript: Optional[str] = None, description: Optional[str] = None) -> None:
        self.transcript = transcript
        self.description = description
        self.calls: list[tuple[str, str]] = []

    async def transcribe_audio_from_url(self, uri: str) -> Optional[str]:
        self.calls.append(("audio", uri))
        return self.transcript

    async def describe_image_from_url(self, uri: str) -> Optional[str]:
        self.calls.append(("image", uri))
        return self.description


class RecordingSender(WazzupSender):
    """WazzupSender that records deliveries; set ``fail`` to simulate API errors"""

    def __init__(self) -> None:
        super().__init__(
            api_url="https://wazzup.test/v3/message",
            api_token="test-token",
            timeout_seconds=5.0,
        )
        self.delivered: list[OutboundMessage] = []
        self.attempts: list[OutboundMessage] = []
        self.fail = False

    async def deliver(self, message: OutboundMessage) -> None:
        self.attempts.append(message)
        if self.fail:
            raise TransientDeliveryError("send returned status 500", details={"status_code": 500})
        self.delivered.append(message)


# ============================================================================
# Redis
# ============================================================================

@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def redis_factory(fake_redis: FakeRedis):
    """client_factory for RedisConnection that hands out the shared FakeRedis"""
    def _factory(url: str, **kwargs) -> FakeRedis:
        return fake_redis

    return _factory


# ============================================================================
# Relay runtime
# ============================================================================

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        REDIS_URL="redis://redis.test:6379/0",
        WAZZUP_API_TOKEN="test-token",
        WAZZUP_TARGET_CHAT_IDS=f"{ALLOWED_CHAT_ID},{OTHER_ALLOWED_CHAT_ID}",
        WAZZUP_WEBHOOK_AUTH_TOKEN="",
        WAZZUP_QUEUE_POLL_TIMEOUT_SECONDS=0.05,
        WAZZUP_AGENT_TIMEOUT_MS=2000,
        USE_WAZZUP_QUEUE=True,
    )


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_media() -> FakeMedia:
    return FakeMedia()


@pytest.fixture
def recording_sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
async def runtime(test_settings, redis_factory, fake_engine, fake_media, recording_sender):
    """RelayRuntime wired to fakes; the worker is not started"""
    rt = RelayRuntime(
        test_settings,
        redis_client_factory=redis_factory,
        engine=fake_engine,
        media=fake_media,
        sender=recording_sender,
    )
    yield rt
    await rt.stop()


@pytest.fixture
async def test_client(runtime: RelayRuntime):
    """ASGI client against the app with the test runtime on app.state"""
    from httpx import AsyncClient, ASGITransport

    app.state.runtime = runtime

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    del app.state.runtime


@pytest.fixture
def admin_headers():
    with patch.object(settings, "ADMIN_API_KEY", TEST_ADMIN_API_KEY):
        yield {"X-Admin-API-Key": TEST_ADMIN_API_KEY}


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def wazzup_message():
    """Factory for raw Wazzup webhook message records (camelCase)"""
    counter = {"n": 0}

    def _create(**overrides: Any) -> dict[str, Any]:
        counter["n"] += 1
        record = {
            "messageId": f"msg-{counter['n']}",
            "chatId": ALLOWED_CHAT_ID,
            "channelId": "channel-1",
            "chatType": "whatsapp",
            "type": "text",
            "text": "Здравствуйте, есть свободные квартиры?",
            "status": "inbound",
            "isEcho": False,
            "dateTime": "2024-05-01T10:00:00.000Z",
        }
        record.update(overrides)
        return {k: v for k, v in record.items() if v is not None}

    return _create


@pytest.fixture
def outbound_message():
    def _create(**overrides: Any) -> OutboundMessage:
        data = {
            "channel_id": "channel-1",
            "chat_type": "whatsapp",
            "chat_id": ALLOWED_CHAT_ID,
            "text": "Здравствуйте! Чем могу помочь?",
        }
        data.update(overrides)
        return OutboundMessage(**data)

    return _create
