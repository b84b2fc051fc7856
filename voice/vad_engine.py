# voice/vad_engine.py
import asyncio
import io
import logging
import wave
from typing import AsyncIterator, Callable, Optional, Protocol, Tuple

from core.exceptions import EngineError
from voice.engine import Alternative, EngineResult, ResultEvent
from voice.stt_module import TranscriptionClient

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    sample_rate: int
    sample_width: int
    channels: int
    frame_ms: int

    def __aiter__(self) -> AsyncIterator[Tuple[bytes, bool]]:
        ...

    def close(self) -> None:
        ...


class _StreamEnded(Exception):
    pass


def pcm_to_wav(pcm: bytes, sample_rate: int, sample_width: int, channels: int) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


class VadSpeechEngine:
    """
    Speech engine built from a VAD-classified frame source and the hosted
    transcription endpoint. Each utterance (speech followed by enough
    silence) is uploaded as WAV and reported as one final result.
    """

    def __init__(
        self,
        transcriber: TranscriptionClient,
        frame_source: Callable[[], FrameSource],
        silence_duration: float = 1.0,
        min_speech_duration: float = 0.3,
        no_speech_timeout: float = 8.0,
    ):
        self.transcriber = transcriber
        self.frame_source = frame_source
        self.silence_duration = silence_duration
        self.min_speech_duration = min_speech_duration
        self.no_speech_timeout = no_speech_timeout

        self.language = "pt-BR"
        self.continuous = True
        self.interim_results = True
        self.max_alternatives = 3

        self.on_start = None
        self.on_end = None
        self.on_error = None
        self.on_speech_start = None
        self.on_speech_end = None
        self.on_result = None

        self._task: Optional[asyncio.Task] = None
        self._cancelled: Optional[asyncio.Task] = None
        self._aborted = False

    @classmethod
    def from_config(cls, transcriber: TranscriptionClient, frame_source: Callable[[], FrameSource],
                    config: dict) -> "VadSpeechEngine":
        audio = config["audio"]
        return cls(
            transcriber,
            frame_source,
            silence_duration=audio["silence_duration"],
            min_speech_duration=audio["min_speech_duration"],
            no_speech_timeout=audio["no_speech_timeout"],
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def configure(self, language: str, continuous: bool, interim_results: bool, max_alternatives: int):
        self.language = language
        self.continuous = continuous
        self.interim_results = interim_results
        self.max_alternatives = max_alternatives

    def start(self):
        previous = None
        if self.running:
            if self._task is not self._cancelled:
                raise EngineError("invalid-state", "recognition has already started")
            # stopped but still unwinding: begin once it has reported its end
            previous = self._task
        self._task = asyncio.get_running_loop().create_task(self._run(previous))

    def stop(self):
        if self.running:
            self._cancelled = self._task
            self._task.cancel()

    def abort(self):
        if self.running:
            self._aborted = True
            self._cancelled = self._task
            self._task.cancel()

    def _fire(self, callback, *args):
        if callback is not None:
            callback(*args)

    async def _run(self, previous: Optional[asyncio.Task] = None):
        if previous is not None:
            await asyncio.wait({previous})
        self._aborted = False
        stream = self.frame_source()
        self._fire(self.on_start)
        try:
            while True:
                pcm = await self._capture_utterance(stream)
                if pcm is None:
                    self._fire(self.on_error, "no-speech")
                    break
                wav = pcm_to_wav(pcm, stream.sample_rate, stream.sample_width, stream.channels)
                transcription = await self.transcriber.transcribe(wav, language=self.language)
                logger.info("Transcribed utterance: %r (%.2f)", transcription.text, transcription.confidence)
                if transcription.text:
                    result = EngineResult(
                        alternatives=[Alternative(transcription.text, transcription.confidence)],
                        is_final=True,
                    )
                    self._fire(self.on_result, ResultEvent(result_index=0, results=[result]))
                if not self.continuous:
                    break
        except _StreamEnded:
            logger.info("Audio stream ended")
        except asyncio.CancelledError:
            if self._aborted:
                self._fire(self.on_error, "aborted")
        except EngineError as e:
            logger.error("Speech engine error %s: %s", e.code, e.message)
            self._fire(self.on_error, e.code)
        except OSError as e:
            logger.error("Audio capture failed: %s", e, exc_info=True)
            self._fire(self.on_error, "audio-capture")
        except Exception as e:
            logger.error("Unexpected error in speech engine: %s", e, exc_info=True)
            self._fire(self.on_error, "unknown")
        finally:
            stream.close()
            self._fire(self.on_end)

    async def _capture_utterance(self, stream: FrameSource) -> Optional[bytes]:
        """PCM of the next utterance, or None when nobody spoke before the timeout."""
        speech_threshold = max(1, int(self.min_speech_duration * 1000 / stream.frame_ms))
        silence_threshold = max(1, int(self.silence_duration * 1000 / stream.frame_ms))
        idle_limit = int(self.no_speech_timeout * 1000 / stream.frame_ms)

        buffer = bytearray()
        voiced = 0
        silence = 0
        idle = 0
        speaking = False
        async for frame, is_speech in stream:
            if not speaking:
                if is_speech:
                    voiced += 1
                    buffer.extend(frame)
                    if voiced >= speech_threshold:
                        speaking = True
                        self._fire(self.on_speech_start)
                else:
                    voiced = 0
                    buffer.clear()
                    idle += 1
                    if idle_limit and idle >= idle_limit:
                        return None
                continue

            buffer.extend(frame)
            if is_speech:
                silence = 0
            else:
                silence += 1
                if silence >= silence_threshold:
                    self._fire(self.on_speech_end)
                    return bytes(buffer)

        if speaking:
            self._fire(self.on_speech_end)
            return bytes(buffer)
        raise _StreamEnded()
