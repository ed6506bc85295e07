"""
Wire and queue models.

Wazzup sends camelCase JSON; the models expose snake_case attributes and
serialize back to camelCase (``model_dump(by_alias=True)``).
"""
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class InboundMessage(_CamelModel):
    """A single record from the Wazzup webhook ``messages`` array"""

    message_id: Optional[str] = None
    chat_id: Optional[str] = None
    channel_id: Optional[str] = None
    chat_type: Optional[str] = None
    # text, audio, image, video, document... unknown values are kept as-is
    type: Optional[str] = None
    text: Optional[str] = None
    content_uri: Optional[str] = None
    # inbound, sent, delivered, read, error...
    status: Optional[str] = None
    is_echo: Optional[bool] = None
    author_name: Optional[str] = None
    date_time: Optional[str] = None


class WebhookPayload(_CamelModel):
    """Body of a Wazzup webhook call. ``test: true`` is a connectivity ping."""

    test: bool = False
    messages: list[Any] = Field(default_factory=list)

    @field_validator("test", "messages", mode="before")
    @classmethod
    def null_as_default(cls, v: Any, info) -> Any:
        if v is None:
            return [] if info.field_name == "messages" else False
        return v


class OutboundMessage(_CamelModel):
    """A reply waiting in the outbound queue"""

    channel_id: str
    chat_type: str
    chat_id: str
    text: str
    ref_message_id: Optional[str] = None
    attempt: Optional[int] = None
    # epoch milliseconds of the first enqueue
    timestamp: Optional[int] = None

    def to_record(self) -> str:
        """JSON record stored in the Redis list"""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_send_body(self) -> dict[str, Any]:
        """Body for the Wazzup send API (queue bookkeeping fields removed)"""
        return self.model_dump(
            by_alias=True,
            exclude_none=True,
            exclude={"attempt", "timestamp"},
        )


class QueueStats(BaseModel):
    queue_length: int
    dead_letter_length: int


class HistoryMetadata(_CamelModel):
    source: Literal["agent", "manager"]
    message_id: Optional[str] = None
    channel_id: Optional[str] = None
    chat_type: Optional[str] = None
    status: Optional[str] = None
    is_echo: Optional[bool] = None
    author_name: Optional[str] = None
    content_uri: Optional[str] = None


class HistoryRecord(_CamelModel):
    """Operator or agent message forwarded to the engine's conversation memory"""

    chat_id: str
    text: str
    role: Literal["assistant"] = "assistant"
    created_at: str
    type: str = "text"
    metadata: HistoryMetadata
