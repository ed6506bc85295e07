"""
Media understanding for inbound audio and images.

The relay turns voice notes into text and images into a short description
before handing the message to the agent. The business logic depends only on
MediaService; OpenAIMediaService implements it over an OpenAI-compatible API.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlparse

import httpx

from wazzup_relay.core.config import settings
from wazzup_relay.core.logging import get_logger

logger = get_logger(__name__)

IMAGE_DESCRIPTION_PROMPT = (
    "Опиши кратко, что изображено на картинке, которую клиент отправил в чат. "
    "Если на изображении есть текст, приведи его."
)


class MediaService(ABC):
    """Media collaborator used while resolving inbound message text"""

    @abstractmethod
    async def transcribe_audio_from_url(self, uri: str) -> Optional[str]:
        """
        Transcribe an audio file.

        Returns:
            The transcript, or None when it could not be produced.
        """

    @abstractmethod
    async def describe_image_from_url(self, uri: str) -> Optional[str]:
        """
        Describe an image.

        Returns:
            The description, or None when it could not be produced.
        """


class NullMediaService(MediaService):
    """Used when no media API is configured: callers fall back to links"""

    async def transcribe_audio_from_url(self, uri: str) -> Optional[str]:
        return None

    async def describe_image_from_url(self, uri: str) -> Optional[str]:
        return None


class OpenAIMediaService(MediaService):
    """Whisper transcription and vision descriptions via /audio/transcriptions and /chat/completions"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        transcription_model: Optional[str] = None,
        vision_model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._api_key = settings.MEDIA_API_KEY if api_key is None else api_key
        self._api_url = (api_url or settings.MEDIA_API_URL).rstrip("/")
        self._transcription_model = transcription_model or settings.MEDIA_TRANSCRIPTION_MODEL
        self._vision_model = vision_model or settings.MEDIA_VISION_MODEL
        self._timeout_seconds = timeout_seconds or settings.MEDIA_TIMEOUT_SECONDS

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def transcribe_audio_from_url(self, uri: str) -> Optional[str]:
        if not self._api_key:
            return None

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                download = await client.get(uri, follow_redirects=True)
                download.raise_for_status()

                filename = urlparse(uri).path.rsplit("/", 1)[-1] or "audio.ogg"
                content_type = download.headers.get("content-type", "application/octet-stream")
                response = await client.post(
                    f"{self._api_url}/audio/transcriptions",
                    headers=self._headers,
                    data={"model": self._transcription_model},
                    files={"file": (filename, download.content, content_type)},
                )
                response.raise_for_status()
                transcript = (response.json().get("text") or "").strip()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Audio transcription failed", extra_data={
                "error": str(e),
                "error_type": type(e).__name__,
            })
            return None

        return transcript or None

    async def describe_image_from_url(self, uri: str) -> Optional[str]:
        if not self._api_key:
            return None

        body = {
            "model": self._vision_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": IMAGE_DESCRIPTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": uri}},
                    ],
                }
            ],
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.post(
                    f"{self._api_url}/chat/completions",
                    headers=self._headers,
                    json=body,
                )
                response.raise_for_status()
                choices = response.json().get("choices") or []
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Image description failed", extra_data={
                "error": str(e),
                "error_type": type(e).__name__,
            })
            return None

        if not choices:
            return None
        content = (choices[0].get("message") or {}).get("content")
        if not isinstance(content, str):
            return None
        return content.strip() or None


def build_media_service() -> MediaService:
    """OpenAIMediaService when MEDIA_API_KEY is set, otherwise the link-only fallback"""
    if settings.MEDIA_API_KEY:
        return OpenAIMediaService()
    return NullMediaService()
