import asyncio
from typing import Any, List, Tuple

import pytest

from core.event_bus import EventBus
from voice.engine import Alternative, EngineResult, ResultEvent
from voice.recognition_session import RecognitionConfig


class FakeEngine:
    """Speech engine double that reports transitions synchronously."""

    def __init__(self):
        self.on_start = None
        self.on_end = None
        self.on_error = None
        self.on_speech_start = None
        self.on_speech_end = None
        self.on_result = None
        self.start_calls = 0
        self.stop_calls = 0
        self.running = False
        self.configured = None

    def configure(self, language, continuous, interim_results, max_alternatives):
        self.configured = {
            "language": language,
            "continuous": continuous,
            "interim_results": interim_results,
            "max_alternatives": max_alternatives,
        }

    def start(self):
        self.start_calls += 1
        self.running = True
        if self.on_start:
            self.on_start()

    def stop(self):
        self.stop_calls += 1
        if self.running:
            self.end()

    # helpers driving the session from the "engine" side
    def end(self):
        self.running = False
        if self.on_end:
            self.on_end()

    def error(self, code):
        if self.on_error:
            self.on_error(code)

    def speech_start(self):
        self.on_speech_start()

    def speech_end(self):
        self.on_speech_end()

    def result(self, transcript, confidence=0.9, is_final=True, alternatives=()):
        alts = [Alternative(transcript, confidence)] + [Alternative(a, 0.1) for a in alternatives]
        self.on_result(ResultEvent(result_index=0, results=[EngineResult(alts, is_final)]))


class StubSynthesizer:
    def __init__(self, audio=b"ID3-fake-mp3", error=None):
        self.audio = audio
        self.error = error
        self.calls: List[dict] = []

    async def synthesize(self, text, *, voice, speed, model):
        self.calls.append({"text": text, "voice": voice, "speed": speed, "model": model})
        if self.error is not None:
            raise self.error
        return self.audio


class StubPlayer:
    def __init__(self):
        self.played: List[bytes] = []
        self.interrupts: List[bool] = []

    async def play_bytes(self, data, suffix=".mp3", interrupt=False):
        self.played.append(data)
        self.interrupts.append(interrupt)
        return "/tmp/fake.mp3"


class Recorder:
    """Collects calls made to application callbacks."""

    def __init__(self):
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []

    def __call__(self, name):
        def _record(*args):
            self.calls.append((name, args))
        return _record

    def named(self, name):
        return [args for call, args in self.calls if call == name]


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def fast_config():
    return RecognitionConfig(auto_stop_timeout=0.02, restart_delay=0.02, error_restart_delay=0.03)


def collect(bus: EventBus, event_type) -> list:
    seen = []
    bus.subscribe(event_type, seen.append)
    return seen


async def settle(seconds: float = 0.08):
    await asyncio.sleep(seconds)
