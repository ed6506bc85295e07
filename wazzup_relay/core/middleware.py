"""
HTTP middleware and exception handlers.

- Correlation id taken from X-Correlation-ID or generated, echoed on the response
- One log line per request with the duration and masked chat ids in the path
- AppException and unexpected errors rendered as {"error": {...}}
"""
import re
import time
from typing import Any, Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from wazzup_relay.core.exceptions import AppException, ErrorCode
from wazzup_relay.core.logging import get_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# Chat ids in admin paths are phone numbers: /admin/chats/77066318623/stop
_CHAT_ID_IN_PATH_RE = re.compile(r"(\d{3,})\d{4}(?=/|$)")


def _mask_path_chat_ids(path: str) -> str:
    """Replace the last four digits of numeric path segments with ****"""
    return _CHAT_ID_IN_PATH_RE.sub(r"\1****", path)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = set_correlation_id(request.headers.get(CORRELATION_HEADER))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request once it completes; 4xx/5xx at WARNING"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        request_info: dict[str, Any] = {
            "method": request.method,
            "path": _mask_path_chat_ids(request.url.path),
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("Request failed", extra_data={
                **request_info,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                "error_type": type(e).__name__,
            }, exc_info=True)
            raise

        request_info["status_code"] = response.status_code
        request_info["duration_ms"] = round((time.perf_counter() - started) * 1000, 1)
        if response.status_code >= 400:
            logger.warning("Request completed with error status", extra_data=request_info)
        else:
            logger.info("Request completed", extra_data=request_info)
        return response


def _error_response(status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={CORRELATION_HEADER: get_correlation_id()},
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning("Application exception", extra_data={
        "error_code": exc.error_code.value,
        "message": exc.message,
        "details": exc.details,
        "path": _mask_path_chat_ids(request.url.path),
    })
    return _error_response(exc.status_code, exc.to_dict())


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", extra_data={
        "exception_type": type(exc).__name__,
        "path": _mask_path_chat_ids(request.url.path),
    }, exc_info=exc)
    return _error_response(500, {
        "error": {
            "code": ErrorCode.INTERNAL_ERROR.value,
            "message": "An unexpected error occurred",
            "details": {},
        }
    })


def setup_middleware(app: FastAPI) -> None:
    # The last middleware added runs first: the correlation id must be bound
    # before the request is logged.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
