# core/exceptions.py
from typing import Any, Dict, Optional


class VoiceControlError(Exception):
    """Base exception for the voice control layer."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class UnsupportedCapabilityError(VoiceControlError):
    """The host has no speech recognition engine."""
    pass


class SessionClosedError(VoiceControlError):
    """A call was made into a session after close()."""
    pass


class EngineError(VoiceControlError):
    """Error reported by the speech recognition engine."""

    def __init__(self, code: str, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.code = code
        super().__init__(message or f"speech engine error: {code}", details)


class TranscriptionError(EngineError):
    """The transcription endpoint could not turn audio into text."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("network", message, details)


class CommandActionError(VoiceControlError):
    """A command's action raised while being dispatched."""

    def __init__(self, command_name: str, cause: BaseException):
        self.command_name = command_name
        self.cause = cause
        super().__init__(
            f"action for command {command_name!r} failed: {cause}",
            {"command": command_name, "error": repr(cause)},
        )


class DuplicateCommandError(VoiceControlError):
    """A command with the same name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"command {name!r} is already registered", {"command": name})


class PlaybackError(VoiceControlError):
    """Speech synthesis request or audio playback failed."""
    pass
