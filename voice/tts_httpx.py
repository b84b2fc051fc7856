# voice/tts_httpx.py

import re
import logging
import asyncio
import httpx
from typing import Optional

from config import Config
from core.exceptions import PlaybackError

logger = logging.getLogger(__name__)

VOICES = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")
MODELS = ("tts-1", "tts-1-hd", "gpt-4o-mini-tts")
MIN_SPEED = 0.25
MAX_SPEED = 4.0


async def _post_with_retries(url: str, *, timeout: float, max_retries: int, backoff_factor: float,
                             transport: Optional[httpx.AsyncBaseTransport] = None,
                             **kwargs) -> httpx.Response:
    delay = backoff_factor
    for attempt in range(1, max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                resp = await client.post(url, **kwargs)
                resp.raise_for_status()
                return resp
        except (httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError) as e:
            logger.warning(
                "TTS request failed (attempt %d/%d) to %s: %s",
                attempt, max_retries, url, e
            )
            if attempt == max_retries:
                logger.error("Max retries reached for TTS at %s", url)
                raise
            await asyncio.sleep(delay)
            delay *= 2
        except httpx.HTTPStatusError as e:
            # 4xx/5xx – won’t succeed on retry
            logger.error("TTS service returned HTTP %d: %s", e.response.status_code, e)
            raise


def prepare_text(text: str, max_chars: int = 1000) -> str:
    """Flatten newlines and whitespace and cap the length for synthesis."""
    cleaned = re.sub(r"\n+", ". ", text or "")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    if len(cleaned) > max_chars:
        cleaned = cleaned[:max_chars] + "."
    return cleaned


class SpeechSynthesisClient:
    """Sends text to the TTS endpoint and returns the audio bytes."""

    def __init__(self,
                 url: Optional[str] = None,
                 timeout: Optional[float] = None,
                 max_retries: Optional[int] = None,
                 backoff_factor: Optional[float] = None,
                 max_chars: Optional[int] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        section = Config.section("tts")
        self.url = url or Config.endpoint_url("tts")
        self.timeout = timeout if timeout is not None else section["timeout"]
        self.max_retries = max_retries if max_retries is not None else section["max_retries"]
        self.backoff_factor = backoff_factor if backoff_factor is not None else section["backoff_factor"]
        self.max_chars = max_chars if max_chars is not None else section["max_chars"]
        self.transport = transport

    async def synthesize(self, text: str, *, voice: str = "nova", speed: float = 1.1,
                         model: str = "tts-1-hd") -> bytes:
        payload_text = prepare_text(text, self.max_chars)
        if not payload_text:
            raise PlaybackError("text is required for speech synthesis")
        if voice not in VOICES:
            raise PlaybackError(f"unknown voice {voice!r}", {"voices": list(VOICES)})
        if model not in MODELS:
            raise PlaybackError(f"unknown model {model!r}", {"models": list(MODELS)})

        payload = {
            "text": payload_text,
            "voice": voice,
            "speed": min(MAX_SPEED, max(MIN_SPEED, float(speed))),
            "model": model,
        }
        headers = {"Accept": "audio/mpeg", "Content-Type": "application/json"}
        logger.debug("Sending TTS payload to %s: %r", self.url, payload)
        try:
            resp = await _post_with_retries(
                self.url,
                timeout=self.timeout,
                max_retries=self.max_retries,
                backoff_factor=self.backoff_factor,
                transport=self.transport,
                json=payload,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise PlaybackError(f"speech synthesis request failed: {e}") from e

        if not resp.content:
            raise PlaybackError("speech synthesis returned no audio")
        logger.info("TTS returned %d bytes (%s)", len(resp.content), resp.headers.get("content-type"))
        return resp.content
