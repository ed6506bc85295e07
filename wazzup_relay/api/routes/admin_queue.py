"""
Admin Diagnostics Endpoints - outbound queue and stop flags without Redis access.

1. Queue stats and worker state
2. Dead letters: inspect and clear
3. Stop flag per chat: inspect, pause and resume automated replies
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from wazzup_relay.api.dependencies.admin_auth import require_admin_api_key
from wazzup_relay.api.dependencies.runtime import get_runtime
from wazzup_relay.core.logging import get_logger, mask_chat_id
from wazzup_relay.domain.models import OutboundMessage
from wazzup_relay.domain.services.stop_flag_service import GateAction, apply_gate_action
from wazzup_relay.runtime import RelayRuntime

logger = get_logger(__name__)

router = APIRouter()


# ─── Pydantic models ────────────────────────────────────────────────────────

class QueueStatsResponse(BaseModel):
    """Queue lengths and worker state"""
    queue_enabled: bool
    is_running: bool
    queue_length: int
    dead_letter_length: int


class DeadLetterResponse(BaseModel):
    """A message that exhausted its retries"""
    chat_id: str
    channel_id: str
    chat_type: str
    text: str
    ref_message_id: Optional[str] = None
    attempt: Optional[int] = None
    timestamp: Optional[int] = Field(default=None, description="first enqueue, epoch ms")

    @classmethod
    def from_message(cls, message: OutboundMessage) -> "DeadLetterResponse":
        return cls(**message.model_dump(by_alias=False))


class ClearDeadLettersResponse(BaseModel):
    removed: int


class StopFlagResponse(BaseModel):
    chat_id: str
    stopped: bool


# ─── Queue ──────────────────────────────────────────────────────────────────

@router.get(
    "/queue/stats",
    response_model=QueueStatsResponse,
    summary="Outbound queue stats",
)
async def queue_stats(
    _: None = Depends(require_admin_api_key),
    runtime: RelayRuntime = Depends(get_runtime),
) -> QueueStatsResponse:
    stats = await runtime.queue.get_stats()
    return QueueStatsResponse(
        queue_enabled=runtime.queue_enabled,
        is_running=runtime.has_worker and runtime.get_worker().is_running,
        queue_length=stats.queue_length,
        dead_letter_length=stats.dead_letter_length,
    )


@router.get(
    "/queue/dead-letters",
    response_model=list[DeadLetterResponse],
    summary="List dead letters",
)
async def list_dead_letters(
    count: int = Query(default=10, ge=1, le=100),
    _: None = Depends(require_admin_api_key),
    runtime: RelayRuntime = Depends(get_runtime),
) -> list[DeadLetterResponse]:
    messages = await runtime.queue.get_dead_letters(count)
    return [DeadLetterResponse.from_message(m) for m in messages]


@router.delete(
    "/queue/dead-letters",
    response_model=ClearDeadLettersResponse,
    summary="Clear dead letters",
)
async def clear_dead_letters(
    _: None = Depends(require_admin_api_key),
    runtime: RelayRuntime = Depends(get_runtime),
) -> ClearDeadLettersResponse:
    removed = await runtime.queue.clear_dead_letters()
    logger.info("Dead letters cleared by admin", extra_data={"removed": removed})
    return ClearDeadLettersResponse(removed=removed)


# ─── Stop flags ─────────────────────────────────────────────────────────────

async def _gate(runtime: RelayRuntime, action: GateAction, chat_id: str) -> StopFlagResponse:
    result = await apply_gate_action(runtime.stop_flags, action, chat_id)
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stop flag store unavailable",
        )
    return StopFlagResponse(chat_id=chat_id, stopped=bool(result.stopped))


@router.get(
    "/chats/{chat_id}/stop",
    response_model=StopFlagResponse,
    summary="Is automated replying stopped for a chat",
)
async def get_stop_flag(
    chat_id: str,
    _: None = Depends(require_admin_api_key),
    runtime: RelayRuntime = Depends(get_runtime),
) -> StopFlagResponse:
    return await _gate(runtime, "check", chat_id)


@router.post(
    "/chats/{chat_id}/stop",
    response_model=StopFlagResponse,
    summary="Stop automated replies for a chat",
)
async def stop_chat(
    chat_id: str,
    _: None = Depends(require_admin_api_key),
    runtime: RelayRuntime = Depends(get_runtime),
) -> StopFlagResponse:
    logger.info("Admin stop requested", extra_data={"chat_id": mask_chat_id(chat_id)})
    return await _gate(runtime, "stop", chat_id)


@router.post(
    "/chats/{chat_id}/start",
    response_model=StopFlagResponse,
    summary="Resume automated replies for a chat",
)
async def start_chat(
    chat_id: str,
    _: None = Depends(require_admin_api_key),
    runtime: RelayRuntime = Depends(get_runtime),
) -> StopFlagResponse:
    logger.info("Admin start requested", extra_data={"chat_id": mask_chat_id(chat_id)})
    return await _gate(runtime, "start", chat_id)
