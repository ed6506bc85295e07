"""
Tests for application settings
"""
import pytest
from pydantic import ValidationError

from wazzup_relay.core.config import Settings


class TestSettings:

    @pytest.mark.unit
    def test_defaults(self):
        config = Settings(_env_file=None)

        assert config.WAZZUP_MESSAGE_API_URL == "https://api.wazzup24.com/v3/message"
        assert config.WAZZUP_QUEUE_PREFIX == "mastra:wazzup-queue"
        assert config.STOP_FLAG_PREFIX == "mastra:input-stop"
        assert config.WAZZUP_QUEUE_MAX_RETRIES == 3
        assert config.USE_WAZZUP_QUEUE is True
        assert config.send_timeout_seconds == 30.0
        assert config.agent_timeout_seconds == 30.0

    @pytest.mark.unit
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("USE_WAZZUP_QUEUE", "false")
        monkeypatch.setenv("WAZZUP_SEND_TIMEOUT_MS", "1500")
        monkeypatch.setenv("WAZZUP_QUEUE_MAX_RETRIES", "5")

        config = Settings(_env_file=None)

        assert config.USE_WAZZUP_QUEUE is False
        assert config.send_timeout_seconds == 1.5
        assert config.WAZZUP_QUEUE_MAX_RETRIES == 5

    @pytest.mark.unit
    @pytest.mark.parametrize("raw,expected", [
        ("webhooks/custom", "/webhooks/custom"),
        ("/hook", "/hook"),
        ("  ", "/webhooks/wazzup"),
    ])
    def test_webhook_path_normalized(self, raw, expected):
        assert Settings(_env_file=None, WAZZUP_WEBHOOK_PATH=raw).WAZZUP_WEBHOOK_PATH == expected

    @pytest.mark.unit
    def test_agent_url_trailing_slash_stripped(self):
        assert Settings(_env_file=None, AGENT_API_URL="http://agent:4111/").AGENT_API_URL == "http://agent:4111"

    @pytest.mark.unit
    @pytest.mark.parametrize("field,value", [
        ("WAZZUP_QUEUE_MAX_RETRIES", 0),
        ("WAZZUP_SEND_TIMEOUT_MS", 0),
        ("WAZZUP_AGENT_TIMEOUT_MS", -1),
        ("WAZZUP_QUEUE_POLL_TIMEOUT_SECONDS", 0),
    ])
    def test_invalid_bounds_rejected(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    @pytest.mark.unit
    def test_log_level(self):
        assert Settings(_env_file=None, DEBUG=True).log_level == "DEBUG"
        assert Settings(_env_file=None, DEBUG=False).log_level == "INFO"
        assert Settings(_env_file=None, LOG_LEVEL="warning").log_level == "WARNING"
