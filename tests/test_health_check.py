"""
Tests for the liveness and readiness probes.
"""
from unittest.mock import AsyncMock

import pytest

from wazzup_relay.domain.services.health_service import check_readiness
from wazzup_relay.runtime import RelayRuntime


class TestLiveness:

    @pytest.mark.integration
    async def test_health_returns_healthy(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestReadiness:

    @pytest.mark.integration
    async def test_ready_when_redis_and_worker_ok(self, test_client, runtime):
        await runtime.start()

        response = await test_client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "redis": "ok", "queue_worker": "ok"}

    @pytest.mark.integration
    async def test_degraded_when_worker_not_running(self, test_client):
        response = await test_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json() == {
            "status": "degraded",
            "redis": "ok",
            "queue_worker": "error: worker_stopped",
        }

    @pytest.mark.unit
    async def test_degraded_when_redis_unavailable(self, runtime):
        await runtime.start()
        runtime.connection.get_client = AsyncMock(side_effect=ConnectionError("refused"))

        result = await check_readiness(runtime)

        assert result["status"] == "degraded"
        assert result["redis"] == "error: redis_unavailable"

    @pytest.mark.unit
    async def test_queue_disabled_is_not_an_error(self, test_settings, redis_factory, fake_engine, recording_sender):
        config = test_settings.model_copy(update={"USE_WAZZUP_QUEUE": False})
        runtime = RelayRuntime(
            config, redis_client_factory=redis_factory, engine=fake_engine, sender=recording_sender
        )
        await runtime.start()

        result = await check_readiness(runtime)

        assert result == {"status": "healthy", "redis": "ok", "queue_worker": "disabled"}
        assert runtime.has_worker is False
        await runtime.stop()
