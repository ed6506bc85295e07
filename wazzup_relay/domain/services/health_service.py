"""
Health checks for the readiness probe.

- liveness: the process answers (no dependency checks)
- readiness: Redis answers PING and the queue worker runs (when the queue is on)
"""
from typing import Any

from wazzup_relay.core.logging import get_logger
from wazzup_relay.runtime import RelayRuntime

logger = get_logger(__name__)

_STATUS_HEALTHY = "healthy"
_STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"
_CHECK_DISABLED = "disabled"

# Filtered error strings, no infrastructure details
_ERROR_REDIS = "error: redis_unavailable"
_ERROR_WORKER_STOPPED = "error: worker_stopped"


async def _check_redis(runtime: RelayRuntime) -> str:
    """Check Redis with PING"""
    try:
        client = await runtime.connection.get_client()
        await client.ping()
        return _CHECK_OK
    except Exception as e:
        logger.warning("Redis health check failed", extra_data={"error": str(e)})
        return _ERROR_REDIS


def _check_queue_worker(runtime: RelayRuntime) -> str:
    if not runtime.queue_enabled:
        return _CHECK_DISABLED
    if runtime.has_worker and runtime.get_worker().is_running:
        return _CHECK_OK
    return _ERROR_WORKER_STOPPED


async def check_readiness(runtime: RelayRuntime) -> dict[str, Any]:
    """
    Readiness of every dependency.

    Returns a dict with:
    - status: "healthy" when every check passed, "degraded" otherwise
    - redis / queue_worker: "ok", "disabled" or "error: ..."
    """
    checks = {
        "redis": await _check_redis(runtime),
        "queue_worker": _check_queue_worker(runtime),
    }

    all_ok = all(v in (_CHECK_OK, _CHECK_DISABLED) for v in checks.values())
    if not all_ok:
        logger.warning("Readiness check degraded", extra_data=checks)

    return {
        "status": _STATUS_HEALTHY if all_ok else _STATUS_DEGRADED,
        **checks,
    }
