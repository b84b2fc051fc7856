# events/events.py
from dataclasses import dataclass, field
from core.event_bus import Event
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from voice.command_registry import VoiceCommand
    from voice.recognition_session import RecognitionResult


@dataclass
class ListeningStarted(Event):
    timestamp: float

@dataclass
class ListeningStopped(Event):
    timestamp: float

@dataclass
class TranscriptReceived(Event):
    result: "RecognitionResult"   # interim and final results alike

@dataclass
class VoiceDetected(Event):
    timestamp: float

@dataclass
class SilenceDetected(Event):
    timestamp: float

@dataclass
class RecognitionFailed(Event):
    code: str               # engine error code, e.g. "network", "no-speech", "aborted"
    message: str = ""

@dataclass
class CommandExecuted(Event):
    command: "VoiceCommand"
    params: Dict[str, Any] = field(default_factory=dict)

@dataclass
class VoiceCommandRequested(Event):
    """Application-level action requested by a command (or by any component)."""
    action: str             # sendMessage, newConversation, clearChat, toggleRecording,
                            # navigateToPage, selectConversation, adjustSettings
    text: Optional[str] = None
    page: Optional[str] = None
    conversation_id: Optional[str] = None
    setting: Optional[str] = None
    value: Any = None

@dataclass
class SpeechPlaybackFailed(Event):
    text: str
    error: str
