"""
Inbound/outbound message rules for the Wazzup relay.

Which inbound messages the agent answers, what text it receives for media,
which outbound messages become conversation history, and how operator
commands are recognised.
"""
from typing import Literal, Optional

from wazzup_relay.core.config import DEFAULT_TARGET_CHAT_IDS
from wazzup_relay.core.logging import get_logger
from wazzup_relay.domain.models import InboundMessage
from wazzup_relay.domain.services.media_service import MediaService

logger = get_logger(__name__)

OperatorCommand = Literal["stop", "start"]
MessageSource = Literal["agent", "manager"]

_OPERATOR_COMMANDS: dict[str, OperatorCommand] = {
    "/stop": "stop",
    "/start": "start",
}


def resolve_target_chat_ids(raw: Optional[str]) -> list[str]:
    """Parse WAZZUP_TARGET_CHAT_IDS; blank or unset falls back to the default allowlist"""
    if raw and raw.strip():
        return [value.strip() for value in raw.split(",") if value.strip()]
    return list(DEFAULT_TARGET_CHAT_IDS)


def should_handle(message: InboundMessage, allowed_chat_ids: list[str]) -> bool:
    """True when the agent should answer this message"""
    if message.is_echo:
        return False
    if message.status and message.status != "inbound":
        return False
    if not message.chat_id:
        return False
    if not allowed_chat_ids:
        return False
    return message.chat_id in allowed_chat_ids


async def _safe_media_call(call, uri: str, kind: str) -> Optional[str]:
    try:
        return await call(uri)
    except Exception as e:
        logger.warning("Media processing failed, using link fallback", extra_data={
            "kind": kind,
            "error": str(e),
            "error_type": type(e).__name__,
        })
        return None


async def resolve_message_text(message: InboundMessage, media: MediaService) -> Optional[str]:
    """
    Build the text handed to the agent.

    Original text first, then a transcript / image description (or a link when
    the media service has nothing). Segments are separated by a blank line.
    Returns None when the message carries neither text nor content.
    """
    segments: list[str] = []

    original_text = (message.text or "").strip()
    if original_text:
        segments.append(original_text)

    uri = message.content_uri
    if uri and message.type == "audio":
        transcript = await _safe_media_call(media.transcribe_audio_from_url, uri, "audio")
        if transcript:
            segments.append(f"Транскрипция аудио клиента: {transcript}")
        else:
            segments.append(f"Клиент отправил аудио. Ссылка: {uri}")
    elif uri and message.type == "image":
        description = await _safe_media_call(media.describe_image_from_url, uri, "image")
        if description:
            segments.append(f"Описание изображения: {description}")
        else:
            segments.append(f"Клиент отправил изображение. Ссылка: {uri}")
    elif not segments and uri:
        segments.append(f"Клиент отправил {message.type or 'content'}. Ссылка: {uri}")

    return "\n\n".join(segments) if segments else None


def should_persist_outbound(message: InboundMessage) -> bool:
    """Only messages Wazzup reports as sent are written to history"""
    return bool(message.chat_id) and message.status == "sent"


def resolve_outbound_text(message: InboundMessage) -> Optional[str]:
    original_text = (message.text or "").strip()
    if original_text:
        return original_text
    if message.content_uri:
        return f"Исходящее сообщение ({message.type or 'контент'}). Ссылка: {message.content_uri}"
    return None


def resolve_source(message: InboundMessage) -> MessageSource:
    """Echoes without an author were sent through the API, i.e. by the agent"""
    if message.is_echo is True and not message.author_name:
        return "agent"
    return "manager"


def match_operator_command(text: Optional[str]) -> Optional[OperatorCommand]:
    if not text:
        return None
    return _OPERATOR_COMMANDS.get(text.strip().lower())
