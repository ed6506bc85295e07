"""
Stop-flag store - per-chat human override of automated replies.

A manager writing "/stop" in a chat sets a marker key in Redis; "/start"
removes it. While the key exists the relay does not ask the agent to answer
in that chat.
"""
import re
from dataclasses import dataclass
from typing import Literal, Optional

from wazzup_relay.core.logging import get_logger, mask_chat_id
from wazzup_relay.core.redis_client import RedisConnection

logger = get_logger(__name__)

STOP_FLAG_VALUE = "stop"

GateAction = Literal["stop", "start", "check"]


def normalize_key_prefix(prefix: str) -> str:
    """Collapse whitespace runs into '-' so keys stay single tokens"""
    return re.sub(r"\s+", "-", prefix)


@dataclass
class GateResult:
    """Outcome of a stop-flag store call, inspected by the caller instead of raising"""

    ok: bool
    action: GateAction
    chat_id: str
    stopped: Optional[bool] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(action: GateAction, chat_id: str, stopped: bool) -> "GateResult":
        return GateResult(ok=True, action=action, chat_id=chat_id, stopped=stopped)

    @staticmethod
    def failure(action: GateAction, chat_id: str, error: str, code: str = "unknown") -> "GateResult":
        return GateResult(ok=False, action=action, chat_id=chat_id, error=error, error_code=code)


class StopFlagStore:
    """Redis-backed stop flags. No TTL: a flag lives until "/start"."""

    def __init__(self, connection: RedisConnection, key_prefix: str = "mastra:input-stop"):
        self._connection = connection
        self.key_prefix = normalize_key_prefix(key_prefix)

    def build_key(self, chat_id: str) -> str:
        return f"{self.key_prefix}:{chat_id}"

    async def set_stop(self, chat_id: str, value: str = STOP_FLAG_VALUE) -> None:
        client = await self._connection.get_client()
        await client.set(self.build_key(chat_id), value)

    async def clear_stop(self, chat_id: str) -> None:
        client = await self._connection.get_client()
        await client.delete(self.build_key(chat_id))

    async def is_stopped(self, chat_id: str) -> bool:
        client = await self._connection.get_client()
        return bool(await client.exists(self.build_key(chat_id)))


async def apply_gate_action(
    store: StopFlagStore,
    action: GateAction,
    chat_id: str,
) -> GateResult:
    """
    Run a stop-flag operation and report the outcome as a GateResult.

    Store errors are logged here and never propagate: a Redis outage must not
    fail the webhook request that carried the operator command.
    """
    try:
        if action == "stop":
            await store.set_stop(chat_id)
            stopped = True
        elif action == "start":
            await store.clear_stop(chat_id)
            stopped = False
        else:
            stopped = await store.is_stopped(chat_id)
    except Exception as e:
        logger.error(
            "Stop flag operation failed",
            extra_data={
                "action": action,
                "chat_id": mask_chat_id(chat_id),
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        return GateResult.failure(action, chat_id, str(e), code=type(e).__name__)

    if action != "check":
        logger.info(
            "Stop flag updated",
            extra_data={"action": action, "chat_id": mask_chat_id(chat_id)},
        )
    return GateResult.success(action, chat_id, stopped)
