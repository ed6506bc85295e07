"""
Custom Exception Hierarchy

Structured exceptions shared by the webhook route, the outbound queue and the
queue worker.
"""
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for API responses and logs"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    UNAUTHORIZED = "ERR_1004"
    CONFIGURATION_ERROR = "ERR_1007"

    # Queue errors (2xxx)
    QUEUE_RECORD_INVALID = "ERR_2001"

    # External service errors (5xxx)
    WAZZUP_ERROR = "ERR_5002"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    ENGINE_TIMEOUT = "ERR_5005"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ConfigurationError(AppException):
    """Raised at construction time when a required setting is missing.

    Never caught inside the application: it must stop process startup.
    """

    def __init__(self, setting: str, component: str):
        super().__init__(
            message=f"{component}: {setting} must be provided via options or env",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
            details={"setting": setting, "component": component}
        )


class UnauthorizedWebhookError(AppException):
    """Raised when the webhook Authorization header does not match"""

    def __init__(self, message: str = "Webhook authorization failed"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            status_code=401
        )


class QueueRecordError(AppException):
    """Raised when a queue record cannot be decoded into an OutboundMessage"""

    def __init__(self, reason: str, raw_preview: str = ""):
        super().__init__(
            message=f"Invalid queue record: {reason}",
            error_code=ErrorCode.QUEUE_RECORD_INVALID,
            status_code=500,
            details={"reason": reason, "raw_preview": raw_preview}
        )


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.details["service"] = service_name


class TransientDeliveryError(ExternalServiceException):
    """Raised when the Wazzup send API rejects or does not answer a message.

    The queue worker retries these until WAZZUP_QUEUE_MAX_RETRIES attempts are used.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="wazzup",
            message=f"Wazzup API error: {message}",
            error_code=ErrorCode.WAZZUP_ERROR,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "TransientDeliveryError":
        """Build the error from an httpx response, keeping a bounded body excerpt"""
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            message=message or f"send returned status {status_code}",
            details={
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class EngineTimeoutError(ExternalServiceException):
    """Raised when the conversational engine does not answer within its bound"""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            service_name="agent",
            message=f"Agent processing timeout exceeded after {timeout_seconds}s",
            error_code=ErrorCode.ENGINE_TIMEOUT,
            details={"timeout_seconds": timeout_seconds}
        )
