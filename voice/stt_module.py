# voice/stt_module.py

import logging
import asyncio
import httpx
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import Config
from core.exceptions import TranscriptionError

logger = logging.getLogger(__name__)


@dataclass
class Transcription:
    text: str
    confidence: float = 1.0
    language: Optional[str] = None
    segments: List[Dict[str, Any]] = field(default_factory=list)


class TranscriptionClient:
    """
    Resilient speech-to-text client for the hosted transcription endpoint,
    using manual retry/back-off and built-in timeouts.
    """

    def __init__(self,
                 url: Optional[str] = None,
                 timeout: Optional[float] = None,
                 max_retries: Optional[int] = None,
                 backoff_factor: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        section = Config.section("asr")
        self.url = url or Config.endpoint_url("asr")
        self.timeout = timeout if timeout is not None else section["timeout"]
        self.max_retries = max_retries if max_retries is not None else section["max_retries"]
        self.backoff_factor = backoff_factor if backoff_factor is not None else section["backoff_factor"]
        self.transport = transport

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        """
        POST with retries on network errors/timeouts.
        """
        delay = self.backoff_factor
        for attempt in range(1, self.max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    resp = await client.post(url, **kwargs)
                    resp.raise_for_status()
                    return resp
            except (httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError) as e:
                logger.warning("Request to %s failed (attempt %d/%d): %s",
                               url, attempt, self.max_retries, e)
                if attempt == self.max_retries:
                    logger.error("Max retries reached for %s", url)
                    raise
                await asyncio.sleep(delay)
                delay *= 2
            except httpx.HTTPStatusError as e:
                # 4xx or 5xx: no point retrying
                logger.error("Server returned error for %s: %s", url, e)
                raise

    async def transcribe(self, audio: bytes, *, language: Optional[str] = None,
                         filename: str = "speech.wav") -> Transcription:
        if not audio:
            raise TranscriptionError("no audio to transcribe")

        logger.debug("Transcribing %d bytes → %s", len(audio), self.url)
        files = {"audio": (filename, audio, "audio/wav")}
        data = {"language": language.split("-")[0]} if language else {}
        headers = {"Accept": "application/json"}
        try:
            resp = await self._post(self.url, files=files, data=data, headers=headers)
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TranscriptionError(f"transcription failed: {e}") from e

        confidence = body.get("confidence")
        return Transcription(
            text=(body.get("text") or body.get("transcript") or "").strip(),
            confidence=1.0 if confidence is None else float(confidence),
            language=body.get("language"),
            segments=body.get("segments") or [],
        )
