"""
Smoke checks against a running relay instance.

- GET /health and /health/ready
- POST a Wazzup test ping to the webhook
- POST a small batch that the relay accepts but does not answer
  (a chat outside the allowlist and a delivery status update)

Only response codes are checked, so the script is safe to run against
production: no agent call and no outbound message is triggered.
"""

from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx

# Allow running from any directory (python scripts/smoke_webhooks.py)
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from wazzup_relay.core.config import settings  # noqa: E402
from wazzup_relay.core.logging import get_logger, setup_logging  # noqa: E402


logger = get_logger(__name__)

SMOKE_CHAT_ID = "70000000000"


def _base_url() -> str:
    port = os.environ.get("PORT", "8000")
    return os.environ.get("BASE_URL", f"http://127.0.0.1:{port}").rstrip("/")


def _timeout_seconds() -> float:
    return float(os.environ.get("SMOKE_TIMEOUT_SECONDS", "10"))


def _webhook_headers() -> dict[str, str]:
    if settings.WAZZUP_WEBHOOK_AUTH_TOKEN:
        return {"Authorization": f"Bearer {settings.WAZZUP_WEBHOOK_AUTH_TOKEN}"}
    return {}


def _batch_payload() -> dict:
    now = datetime.now(timezone.utc).isoformat()
    return {
        "messages": [
            {
                "messageId": "smoke-inbound-1",
                "chatId": SMOKE_CHAT_ID,
                "channelId": "smoke-channel",
                "chatType": "whatsapp",
                "type": "text",
                "text": "smoke",
                "status": "inbound",
                "isEcho": False,
                "dateTime": now,
            },
            {
                "messageId": "smoke-status-1",
                "chatId": SMOKE_CHAT_ID,
                "channelId": "smoke-channel",
                "chatType": "whatsapp",
                "type": "text",
                "status": "delivered",
                "isEcho": True,
                "dateTime": now,
            },
        ]
    }


def _check_status(resp: httpx.Response, expected_family: int = 2) -> None:
    family = resp.status_code // 100
    if family != expected_family:
        raise RuntimeError(
            f"Unexpected status {resp.status_code} for {resp.request.method} {resp.request.url}. "
            f"Body: {(resp.text or '')[:500]}"
        )


def main() -> None:
    setup_logging(level="INFO", json_format=False, app_name="wazzup-relay-smoke")

    base_url = _base_url()
    timeout = _timeout_seconds()
    webhook_url = f"{base_url}{settings.WAZZUP_WEBHOOK_PATH}"

    logger.info("Starting smoke tests", extra_data={"base_url": base_url, "timeout_seconds": timeout})

    with httpx.Client(timeout=timeout) as client:
        for path in ("/health", "/health/ready"):
            logger.info("Checking health endpoint", extra_data={"url": f"{base_url}{path}"})
            resp = client.get(f"{base_url}{path}")
            _check_status(resp, expected_family=2)

        logger.info("Posting Wazzup test ping", extra_data={"url": webhook_url})
        resp = client.post(webhook_url, json={"test": True}, headers=_webhook_headers())
        _check_status(resp, expected_family=2)

        logger.info("Posting Wazzup message batch", extra_data={"url": webhook_url})
        resp = client.post(webhook_url, json=_batch_payload(), headers=_webhook_headers())
        _check_status(resp, expected_family=2)
        logger.info("Webhook batch accepted", extra_data={"summary": resp.json().get("summary")})

    logger.info("Smoke tests completed successfully")


if __name__ == "__main__":
    main()
