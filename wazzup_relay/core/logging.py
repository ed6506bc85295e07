"""
Structured logging for the relay.

Every record can carry an ``extra_data`` dict. Production writes one JSON
object per line; DEBUG writes a readable line with the extra data appended.
A correlation id ties together the log lines of one webhook request or one
queue worker delivery.
"""
import json
import logging
import logging.config
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

_service_name = "wazzup-relay"

_QUIET_LOGGERS = ("httpx", "httpcore", "redis", "uvicorn.access")

_TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | [%(correlation_id)s] | %(message)s"


def _dumps(value: Any) -> str:
    # Russian chat text stays readable in the logs
    return json.dumps(value, ensure_ascii=False, default=str)


class JSONFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": _service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        extra_data = getattr(record, "extra_data", None)
        if extra_data is not None:
            entry["extra"] = extra_data

        return _dumps(entry)


class TextFormatter(logging.Formatter):
    """Plain log line followed by extra_data as JSON"""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra_data = getattr(record, "extra_data", None)
        return f"{line} {_dumps(extra_data)}" if extra_data else line


class CorrelationIdFilter(logging.Filter):
    """Exposes the current correlation id as %(correlation_id)s"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        return True


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods accept ``extra_data``.

        logger.info("Message enqueued", extra_data={"queue_length": 3})
    """

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False,
             stacklevel=1, extra_data: dict[str, Any] | None = None):
        if extra_data:
            extra = {**(extra or {}), "extra_data": extra_data}
        super()._log(level, msg, args, exc_info=exc_info, extra=extra,
                     stack_info=stack_info, stacklevel=stacklevel + 1)


logging.setLoggerClass(StructuredLogger)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    app_name: str = "wazzup-relay"
) -> None:
    """
    Configure the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines (production) instead of the readable format
        app_name: value of the ``service`` field in JSON records
    """
    global _service_name
    _service_name = app_name
    level = level.upper()

    if json_format:
        formatter: dict[str, Any] = {"()": JSONFormatter}
    else:
        formatter = {"()": TextFormatter, "fmt": _TEXT_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"correlation_id": {"()": CorrelationIdFilter}},
        "formatters": {"default": formatter},
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "level": level,
                "formatter": "default",
                "filters": ["correlation_id"],
            },
        },
        "root": {"level": level, "handlers": ["stdout"]},
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
    })


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation id to the current context (a new one when None)"""
    cid = correlation_id or generate_correlation_id()
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> str:
    """Current correlation id; binds a new one if the context has none"""
    return correlation_id_var.get() or set_correlation_id()


def mask_chat_id(chat_id: str | None) -> str:
    """
    Mask a chat id for logging.

    Wazzup chat ids for WhatsApp are phone numbers, so the last four digits
    are hidden (77066318623 -> 7706631****).
    """
    if not chat_id:
        return ""
    if len(chat_id) < 4:
        return "****"
    return chat_id[:-4] + "****"


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore[return-value]
