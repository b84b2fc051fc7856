# voice/recognition_session.py
import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from config import Config
from core.event_bus import Event, EventBus
from core.exceptions import SessionClosedError, UnsupportedCapabilityError
from events.events import (
    ListeningStarted,
    ListeningStopped,
    RecognitionFailed,
    SilenceDetected,
    TranscriptReceived,
    VoiceDetected,
)
from voice.engine import EngineResult, ResultEvent, SpeechEngine

logger = logging.getLogger(__name__)

SENSITIVITIES = ("low", "medium", "high")
ABORTED = "aborted"


@dataclass
class RecognitionConfig:
    language: str = "pt-BR"
    continuous: bool = True
    interim_results: bool = True
    max_alternatives: int = 3
    sensitivity: str = "medium"
    noise_reduction: bool = True
    auto_stop: bool = True
    auto_stop_timeout: float = 3.0      # seconds of silence before auto-stop
    restart_delay: float = 1.0          # hands-free restart after the engine ends
    error_restart_delay: float = 2.0    # hands-free restart after an engine error

    def __post_init__(self):
        if self.sensitivity not in SENSITIVITIES:
            raise ValueError(f"sensitivity must be one of {SENSITIVITIES}, got {self.sensitivity!r}")

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> "RecognitionConfig":
        section = (config or Config.get_config()).get("recognition", {})
        names = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in section.items() if k in names})


@dataclass(frozen=True)
class RecognitionResult:
    transcript: str
    confidence: float
    is_final: bool
    alternatives: Tuple[str, ...] = ()
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class RecognitionSessionState:
    is_listening: bool
    is_hands_free_mode: bool
    last_activity: float
    silence_timer_pending: bool
    restart_pending: bool


class RecognitionSession:
    """
    Drives one continuous speech recognition stream.

    Engine callbacks update the listening state and are re-published on the
    event bus. Final results go to the command dispatcher. In hands-free
    mode the stream is restarted after every end or non-abort error.
    """

    def __init__(
        self,
        engine: Optional[SpeechEngine],
        dispatcher=None,
        bus: Optional[EventBus] = None,
        config: Optional[RecognitionConfig] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.engine = engine
        self.dispatcher = dispatcher
        self.bus = bus or EventBus()
        self.config = config or RecognitionConfig()
        self._loop = loop

        self.is_listening = False
        self.is_hands_free_mode = False
        self.last_activity = time.time()
        self._starting = False
        self._closed = False
        self._silence_timer: Optional[asyncio.TimerHandle] = None
        self._restart_timer: Optional[asyncio.TimerHandle] = None

        if engine is None:
            logger.warning("No speech recognition engine available")
        else:
            self._bind_engine()
            self._apply_engine_config()

    # ── engine wiring ────────────────────────────────────────────────────
    def _bind_engine(self):
        self.engine.on_start = self._on_start
        self.engine.on_end = self._on_end
        self.engine.on_error = self._on_error
        self.engine.on_speech_start = self._on_speech_start
        self.engine.on_speech_end = self._on_speech_end
        self.engine.on_result = self._on_result

    def _unbind_engine(self):
        for slot in ("on_start", "on_end", "on_error", "on_speech_start", "on_speech_end", "on_result"):
            setattr(self.engine, slot, None)

    def _apply_engine_config(self):
        self.engine.configure(
            language=self.config.language,
            continuous=self.config.continuous,
            interim_results=self.config.interim_results,
            max_alternatives=self.config.max_alternatives,
        )

    # ── public API ───────────────────────────────────────────────────────
    @property
    def is_supported(self) -> bool:
        return self.engine is not None

    @property
    def state(self) -> RecognitionSessionState:
        return RecognitionSessionState(
            is_listening=self.is_listening,
            is_hands_free_mode=self.is_hands_free_mode,
            last_activity=self.last_activity,
            silence_timer_pending=self._silence_timer is not None,
            restart_pending=self._restart_timer is not None,
        )

    def configure(self, **changes: Any):
        self.config = dataclasses.replace(self.config, **changes)
        if self.engine is not None:
            self._apply_engine_config()
        logger.debug("Recognition config updated: %s", changes)

    def start(self):
        if self._closed:
            raise SessionClosedError("recognition session is closed")
        if self.engine is None:
            raise UnsupportedCapabilityError("speech recognition is not supported on this host")
        if self.is_listening or self._starting:
            return
        self._cancel_restart()
        self._starting = True
        try:
            self.engine.start()
        except Exception as e:
            self._starting = False
            logger.error("Failed to start speech recognition: %s", e, exc_info=True)
            self._on_error(getattr(e, "code", "start-failed"))

    def stop(self):
        self._cancel_silence_timer()
        self._cancel_restart()
        if not (self.is_listening or self._starting):
            return
        self.is_listening = False
        self._starting = False
        try:
            self.engine.stop()
        except Exception as e:
            logger.warning("Speech engine stop failed: %s", e, exc_info=True)

    def enable_hands_free(self):
        self.is_hands_free_mode = True
        logger.info("Hands-free mode enabled")
        if not self.is_listening:
            self.start()

    def disable_hands_free(self):
        self.is_hands_free_mode = False
        self._cancel_restart()
        logger.info("Hands-free mode disabled")
        if self.is_listening:
            self.stop()

    def close(self):
        if self._closed:
            return
        self.is_hands_free_mode = False
        self.stop()
        self._cancel_silence_timer()
        if self.engine is not None:
            self._unbind_engine()
        self._closed = True
        logger.info("Recognition session closed")

    def status(self) -> Dict[str, Any]:
        return {
            "is_supported": self.is_supported,
            "is_listening": self.is_listening,
            "is_hands_free_mode": self.is_hands_free_mode,
            "config": dataclasses.asdict(self.config),
            "command_count": len(self.dispatcher.registry) if self.dispatcher is not None else 0,
            "last_activity": self.last_activity,
        }

    # ── engine callbacks ─────────────────────────────────────────────────
    def _on_start(self):
        self._starting = False
        self.is_listening = True
        self.last_activity = time.time()
        self._cancel_restart()
        logger.info("Speech recognition started (%s)", self.config.language)
        self._emit(ListeningStarted(timestamp=self.last_activity))

    def _on_end(self):
        self._starting = False
        self.is_listening = False
        logger.info("Speech recognition ended")
        self._emit(ListeningStopped(timestamp=time.time()))
        if self.is_hands_free_mode and not self._closed:
            self._schedule_restart(self.config.restart_delay)

    def _on_error(self, code: str):
        self._starting = False
        logger.error("Speech recognition error: %s", code)
        self._emit(RecognitionFailed(code=code, message=f"speech engine error: {code}"))
        if self.is_hands_free_mode and code != ABORTED and not self._closed:
            self._schedule_restart(self.config.error_restart_delay)

    def _on_speech_start(self):
        self._cancel_silence_timer()
        self._emit(VoiceDetected(timestamp=time.time()))

    def _on_speech_end(self):
        self._start_silence_timer()

    def _on_result(self, event: ResultEvent):
        self.last_activity = time.time()
        for index in range(event.result_index, len(event.results)):
            result = self._build_result(event.results[index])
            if result is None:
                continue
            self._emit(TranscriptReceived(result=result))
            # interim results are for display only
            if result.is_final and self.dispatcher is not None:
                self.dispatcher.process_transcript(result.transcript, result.confidence)

    @staticmethod
    def _build_result(item: EngineResult) -> Optional[RecognitionResult]:
        if not item.alternatives:
            return None
        best = item.alternatives[0]
        return RecognitionResult(
            transcript=best.transcript.strip(),
            confidence=best.confidence or 0.0,
            is_final=item.is_final,
            alternatives=tuple(alt.transcript.strip() for alt in item.alternatives[1:]),
        )

    # ── timers ───────────────────────────────────────────────────────────
    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def _start_silence_timer(self):
        self._cancel_silence_timer()
        self._silence_timer = self._get_loop().call_later(self.config.auto_stop_timeout, self._on_silence)

    def _cancel_silence_timer(self):
        if self._silence_timer is not None:
            self._silence_timer.cancel()
            self._silence_timer = None

    def _on_silence(self):
        self._silence_timer = None
        self._emit(SilenceDetected(timestamp=time.time()))
        if self.config.auto_stop and self.is_listening and not self.is_hands_free_mode:
            logger.info("No speech for %.1fs; stopping", self.config.auto_stop_timeout)
            self.stop()

    def _schedule_restart(self, delay: float):
        if self._restart_timer is not None:
            return
        logger.debug("Restarting speech recognition in %.1fs", delay)
        self._restart_timer = self._get_loop().call_later(delay, self._restart)

    def _cancel_restart(self):
        if self._restart_timer is not None:
            self._restart_timer.cancel()
            self._restart_timer = None

    def _restart(self):
        self._restart_timer = None
        if self._closed or not self.is_hands_free_mode or self.is_listening:
            return
        logger.info("Restarting speech recognition (hands-free)")
        self.start()

    def _emit(self, event: Event):
        self.bus.emit(event)
