# voice/command_dispatcher.py
import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Set

from core.event_bus import EventBus
from core.exceptions import CommandActionError
from events.events import CommandExecuted
from voice.command_registry import CommandRegistry, VoiceCommand
from voice.phrase_matcher import extract_parameters, matches_phrase

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.7
HISTORY_SIZE = 10


@dataclass(frozen=True)
class CommandExecutionRecord:
    command_name: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class CommandMatch:
    command: VoiceCommand
    phrase: str
    params: Dict[str, Any]
    transcript: str


class CommandDispatcher:
    """
    Turns final transcripts into command invocations. At most one command
    fires per transcript: the first phrase that matches, scanning commands
    in registration order and phrases in declaration order.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        bus: Optional[EventBus] = None,
        min_confidence: float = MIN_CONFIDENCE,
        history_size: int = HISTORY_SIZE,
    ):
        self.registry = registry
        self.bus = bus
        self.min_confidence = min_confidence
        self._history: Deque[CommandExecutionRecord] = deque(maxlen=history_size)
        self._pending: Set[asyncio.Future] = set()
        self.last_match: Optional[CommandMatch] = None

    @property
    def history(self) -> List[CommandExecutionRecord]:
        """Most recent first."""
        return list(self._history)

    @property
    def history_names(self) -> List[str]:
        return [record.command_name for record in self._history]

    def find_match(self, transcript: str) -> Optional[CommandMatch]:
        normalized = (transcript or "").lower().strip()
        if not normalized:
            return None
        for command in self.registry:
            for phrase in command.phrases:
                if matches_phrase(normalized, phrase):
                    params = extract_parameters(normalized, phrase)
                    return CommandMatch(command, phrase, params, normalized)
        return None

    def process_transcript(self, transcript: str, confidence: float) -> Optional[CommandMatch]:
        if confidence is None or confidence < self.min_confidence:
            logger.debug("Ignoring transcript %r (confidence %.2f)", transcript, confidence or 0.0)
            return None

        match = self.find_match(transcript)
        if match is None:
            logger.debug("No command matched %r", transcript)
            return None

        self.last_match = match
        logger.info("Voice command %s matched by %r, params=%s",
                    match.command.name, match.phrase, match.params)
        try:
            result = match.command.action(match.params)
            if asyncio.iscoroutine(result) or asyncio.isfuture(result):
                self._track(match.command, asyncio.ensure_future(result))
        except Exception as e:
            err = CommandActionError(match.command.name, e)
            logger.error("%s", err, exc_info=True)
            return match

        self._history.appendleft(CommandExecutionRecord(match.command.name))
        if self.bus is not None:
            try:
                self.bus.emit(CommandExecuted(command=match.command, params=match.params))
            except Exception as e:
                logger.error("CommandExecuted subscriber failed for %s: %s", match.command.name, e, exc_info=True)
        return match

    def _track(self, command: VoiceCommand, future: asyncio.Future):
        self._pending.add(future)

        def _done(fut: asyncio.Future):
            self._pending.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                err = CommandActionError(command.name, exc)
                logger.error("%s", err, exc_info=exc)

        future.add_done_callback(_done)

    async def drain(self):
        """Wait for async actions still running."""
        while self._pending:
            pending = list(self._pending)
            await asyncio.gather(*pending, return_exceptions=True)
            self._pending.difference_update(pending)
