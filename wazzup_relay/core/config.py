"""
Application Configuration
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings

# Fallback allowlist when WAZZUP_TARGET_CHAT_IDS is not set
DEFAULT_TARGET_CHAT_IDS = ("77066318623", "77475318623")


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    APP_NAME: str = "Wazzup Relay"
    DEBUG: bool = False
    LOG_LEVEL: str = ""

    # Redis backs the outbound queue and the stop-flag store; required.
    REDIS_URL: str = ""

    # Wazzup send API
    WAZZUP_API_TOKEN: str = ""
    WAZZUP_MESSAGE_API_URL: str = "https://api.wazzup24.com/v3/message"
    WAZZUP_SEND_TIMEOUT_MS: int = 30000

    # Wazzup webhook
    WAZZUP_WEBHOOK_PATH: str = "/webhooks/wazzup"
    WAZZUP_WEBHOOK_AUTH_TOKEN: str = ""
    # Comma-separated chat ids allowed to receive automated replies
    WAZZUP_TARGET_CHAT_IDS: str = ""

    # Outbound queue
    USE_WAZZUP_QUEUE: bool = True
    WAZZUP_QUEUE_PREFIX: str = "mastra:wazzup-queue"
    WAZZUP_QUEUE_MAX_RETRIES: int = 3
    WAZZUP_QUEUE_POLL_TIMEOUT_SECONDS: float = 1.0

    # Stop flags (operator /stop and /start)
    STOP_FLAG_PREFIX: str = "mastra:input-stop"

    # Conversational engine (agent server)
    AGENT_API_URL: str = "http://localhost:4111"
    AGENT_ID: str = "baqytAgent"
    AGENT_RESOURCE_ID: str = "wazzup"
    WAZZUP_AGENT_TIMEOUT_MS: int = 30000

    # Media understanding (OpenAI-compatible API). Without a key, audio and
    # images are forwarded to the engine as links.
    MEDIA_API_URL: str = "https://api.openai.com/v1"
    MEDIA_API_KEY: str = ""
    MEDIA_TRANSCRIPTION_MODEL: str = "whisper-1"
    MEDIA_VISION_MODEL: str = "gpt-4o-mini"
    MEDIA_TIMEOUT_SECONDS: float = 60.0

    # Admin diagnostics endpoints (openssl rand -hex 32)
    ADMIN_API_KEY: str = ""

    @field_validator("WAZZUP_WEBHOOK_PATH", mode="before")
    @classmethod
    def normalize_webhook_path(cls, v: str) -> str:
        """Route paths must start with a slash"""
        v = (v or "").strip() or "/webhooks/wazzup"
        if not v.startswith("/"):
            v = f"/{v}"
        return v

    @field_validator("AGENT_API_URL", "MEDIA_API_URL", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return (v or "").rstrip("/")

    @field_validator("WAZZUP_QUEUE_MAX_RETRIES", mode="after")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """At least one attempt, otherwise every message goes straight to dead-letters"""
        if v < 1:
            raise ValueError("WAZZUP_QUEUE_MAX_RETRIES must be at least 1")
        return v

    @field_validator(
        "WAZZUP_SEND_TIMEOUT_MS",
        "WAZZUP_AGENT_TIMEOUT_MS",
        mode="after",
    )
    @classmethod
    def validate_positive_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("WAZZUP_QUEUE_POLL_TIMEOUT_SECONDS", mode="after")
    @classmethod
    def validate_poll_timeout(cls, v: float) -> float:
        # BLPOP with timeout 0 blocks forever and would make shutdown hang
        if v <= 0:
            raise ValueError("WAZZUP_QUEUE_POLL_TIMEOUT_SECONDS must be positive")
        return v

    @property
    def send_timeout_seconds(self) -> float:
        return self.WAZZUP_SEND_TIMEOUT_MS / 1000

    @property
    def agent_timeout_seconds(self) -> float:
        return self.WAZZUP_AGENT_TIMEOUT_MS / 1000

    @property
    def log_level(self) -> str:
        if self.LOG_LEVEL:
            return self.LOG_LEVEL.upper()
        return "DEBUG" if self.DEBUG else "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
