"""
Wazzup Webhook Handler

Receives message batches from Wazzup, lets the agent answer customer messages
and records operator messages. The path comes from WAZZUP_WEBHOOK_PATH.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from wazzup_relay.api.dependencies.runtime import get_runtime
from wazzup_relay.core.config import settings
from wazzup_relay.core.exceptions import UnauthorizedWebhookError
from wazzup_relay.core.logging import get_logger
from wazzup_relay.runtime import RelayRuntime

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    settings.WAZZUP_WEBHOOK_PATH,
    summary="Wazzup webhook",
    description=(
        "Accepts `{messages: [...]}` batches and `{test: true}` pings from Wazzup. "
        "Inbound customer messages from allowlisted chats are answered by the agent; "
        "sent operator messages are stored as history, `/stop` and `/start` toggle "
        "automated replies for the chat."
    ),
    responses={
        200: {"description": "Batch processed"},
        400: {"description": "Body is not valid JSON"},
        401: {"description": "Authorization header does not match WAZZUP_WEBHOOK_AUTH_TOKEN"},
        500: {"description": "Unexpected error"},
    },
)
async def wazzup_webhook(
    request: Request,
    runtime: RelayRuntime = Depends(get_runtime),
) -> JSONResponse:
    try:
        payload = await request.json()
    except ValueError as e:
        logger.error("Failed to parse Wazzup webhook payload", extra_data={"error": str(e)})
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid_json"})

    try:
        result = runtime.webhook_service.handle_webhook(
            payload,
            authorization=request.headers.get("authorization"),
        )

        if result.type == "test":
            return JSONResponse(status_code=200, content={"ok": True})

        if result.inbound_messages:
            await runtime.relay.process_inbound_messages(result.inbound_messages)

        await runtime.relay.persist_outbound_messages(result.messages)

        return JSONResponse(
            status_code=200,
            content={
                "ok": True,
                "summary": {
                    "messages": len(result.messages),
                    "inboundMessages": len(result.inbound_messages),
                },
            },
        )
    except UnauthorizedWebhookError:
        logger.warning("Blocked unauthorized Wazzup webhook request")
        return JSONResponse(status_code=401, content={"ok": False, "error": "unauthorized"})
    except Exception as e:
        logger.error("Failed to handle Wazzup webhook payload", extra_data={
            "error": str(e),
            "error_type": type(e).__name__,
        }, exc_info=True)
        return JSONResponse(status_code=500, content={"ok": False, "error": "internal_error"})
