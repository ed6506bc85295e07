"""
Tests for the stop-flag store and the GateResult wrapper.
"""
import pytest
from unittest.mock import AsyncMock

from wazzup_relay.core.redis_client import RedisConnection
from wazzup_relay.domain.services.stop_flag_service import (
    StopFlagStore,
    apply_gate_action,
)
from tests.conftest import ALLOWED_CHAT_ID


@pytest.fixture
def store(redis_factory) -> StopFlagStore:
    connection = RedisConnection("redis://redis.test:6379/0", client_factory=redis_factory)
    return StopFlagStore(connection, key_prefix="mastra:input-stop")


class TestStopFlagStore:
    """set_stop / clear_stop / is_stopped"""

    @pytest.mark.unit
    async def test_untouched_chat_is_not_stopped(self, store):
        assert await store.is_stopped(ALLOWED_CHAT_ID) is False

    @pytest.mark.unit
    async def test_set_then_clear(self, store, fake_redis):
        await store.set_stop(ALLOWED_CHAT_ID)
        assert await store.is_stopped(ALLOWED_CHAT_ID) is True
        assert await fake_redis.get(f"mastra:input-stop:{ALLOWED_CHAT_ID}") == "stop"

        await store.clear_stop(ALLOWED_CHAT_ID)
        assert await store.is_stopped(ALLOWED_CHAT_ID) is False

    @pytest.mark.unit
    async def test_operations_are_idempotent(self, store):
        await store.set_stop(ALLOWED_CHAT_ID)
        await store.set_stop(ALLOWED_CHAT_ID)
        assert await store.is_stopped(ALLOWED_CHAT_ID) is True

        await store.clear_stop(ALLOWED_CHAT_ID)
        await store.clear_stop(ALLOWED_CHAT_ID)
        assert await store.is_stopped(ALLOWED_CHAT_ID) is False

    @pytest.mark.unit
    def test_whitespace_in_prefix_is_collapsed(self, redis_factory):
        connection = RedisConnection("redis://redis.test:6379/0", client_factory=redis_factory)
        store = StopFlagStore(connection, key_prefix="input stop")
        assert store.build_key("123") == "input-stop:123"


class TestApplyGateAction:
    """Failures are reported, never raised"""

    @pytest.mark.unit
    async def test_success_results(self, store):
        stop = await apply_gate_action(store, "stop", ALLOWED_CHAT_ID)
        check = await apply_gate_action(store, "check", ALLOWED_CHAT_ID)
        start = await apply_gate_action(store, "start", ALLOWED_CHAT_ID)

        assert (stop.ok, stop.stopped) == (True, True)
        assert (check.ok, check.stopped) == (True, True)
        assert (start.ok, start.stopped) == (True, False)

    @pytest.mark.unit
    async def test_store_error_becomes_failure_result(self, store):
        store.set_stop = AsyncMock(side_effect=ConnectionError("redis down"))

        result = await apply_gate_action(store, "stop", ALLOWED_CHAT_ID)

        assert result.ok is False
        assert result.action == "stop"
        assert result.chat_id == ALLOWED_CHAT_ID
        assert result.error == "redis down"
        assert result.error_code == "ConnectionError"
