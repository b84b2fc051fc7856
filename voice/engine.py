# voice/engine.py
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol


@dataclass(frozen=True)
class Alternative:
    transcript: str
    confidence: float = 0.0


@dataclass(frozen=True)
class EngineResult:
    """One utterance segment as reported by an engine, best alternative first."""
    alternatives: List[Alternative]
    is_final: bool = False


@dataclass(frozen=True)
class ResultEvent:
    result_index: int
    results: List[EngineResult] = field(default_factory=list)


class SpeechEngine(Protocol):
    """
    Continuous speech recognition capability. The recognition session
    fills the callback slots; start() and stop() only request a transition,
    completion is reported through on_start / on_end.
    """
    on_start: Optional[Callable[[], None]]
    on_end: Optional[Callable[[], None]]
    on_error: Optional[Callable[[str], None]]
    on_speech_start: Optional[Callable[[], None]]
    on_speech_end: Optional[Callable[[], None]]
    on_result: Optional[Callable[[ResultEvent], None]]

    def configure(self, language: str, continuous: bool, interim_results: bool,
                  max_alternatives: int) -> None:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...
