import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from config import Config
from core.event_bus import EventBus
from core.exceptions import PlaybackError, UnsupportedCapabilityError
from events.events import CommandExecuted, SpeechPlaybackFailed, VoiceCommandRequested
from voice.command_dispatcher import HISTORY_SIZE, MIN_CONFIDENCE, CommandDispatcher
from voice.command_registry import CommandCategory, CommandRegistry, VoiceCommand
from voice.default_commands import default_commands
from voice.engine import SpeechEngine
from voice.recognition_session import RecognitionConfig, RecognitionSession
from voice.tts_httpx import MAX_SPEED, MIN_SPEED, VOICES

# Configure logger
logger = logging.getLogger(__name__)

CHAT_COMMANDS = (
    "responder",
    "repetir_resposta",
    "velocidade_voz",
    "mudar_voz",
    "modo_silencioso",
    "ativar_audio",
    "ajuda_comandos",
)

SPEED_STEP = 0.25
# phrase -> None resets to normal speed, otherwise the step to apply
SPEED_PHRASES = {
    "velocidade normal": None,
    "falar mais rápido": SPEED_STEP,
    "velocidade rápida": SPEED_STEP,
    "falar mais devagar": -SPEED_STEP,
    "velocidade lenta": -SPEED_STEP,
}
NORMAL_SPEED = 1.0


@dataclass
class VoiceControlActions:
    """Application callbacks; any of them may be left out."""
    on_send_message: Optional[Callable[[str], Any]] = None
    on_new_conversation: Optional[Callable[[], Any]] = None
    on_clear_chat: Optional[Callable[[], Any]] = None
    on_toggle_recording: Optional[Callable[[], Any]] = None
    on_navigate_to_page: Optional[Callable[[str], Any]] = None
    on_select_conversation: Optional[Callable[[str], Any]] = None
    on_adjust_settings: Optional[Callable[[str, Any], Any]] = None


@dataclass
class VoiceControlConfig:
    enable_hands_free: bool = False
    auto_play_responses: bool = True
    language: Optional[str] = None
    sensitivity: Optional[str] = None
    noise_reduction: Optional[bool] = None
    custom_commands: List[VoiceCommand] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> "VoiceControlConfig":
        section = (config or Config.get_config()).get("voice_control", {})
        return cls(
            enable_hands_free=section.get("enable_hands_free", False),
            auto_play_responses=section.get("auto_play_responses", True),
        )

    def recognition_overrides(self) -> Dict[str, Any]:
        overrides = {
            "language": self.language,
            "sensitivity": self.sensitivity,
            "noise_reduction": self.noise_reduction,
        }
        return {k: v for k, v in overrides.items() if v is not None}


@dataclass
class TTSSettings:
    voice: str = "nova"
    speed: float = 1.1
    model: str = "tts-1-hd"
    muted: bool = False

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> "TTSSettings":
        section = (config or Config.get_config()).get("tts", {})
        return cls(
            voice=section.get("voice", "nova"),
            speed=section.get("speed", 1.1),
            model=section.get("model", "tts-1-hd"),
        )


class VoiceControlSession:
    """
    Voice control for the chat application: owns the command registry,
    dispatcher and recognition session, maps commands onto application
    callbacks and speaks responses back through the TTS endpoint.
    """

    def __init__(
        self,
        actions: Optional[VoiceControlActions] = None,
        config: Optional[VoiceControlConfig] = None,
        *,
        engine: Optional[SpeechEngine] = None,
        bus: Optional[EventBus] = None,
        synthesizer=None,
        player=None,
        tts_settings: Optional[TTSSettings] = None,
        recognition_config: Optional[RecognitionConfig] = None,
        min_confidence: float = MIN_CONFIDENCE,
        history_size: int = HISTORY_SIZE,
    ):
        self.actions = actions or VoiceControlActions()
        self.config = config or VoiceControlConfig()
        self.bus = bus or EventBus()
        self.synthesizer = synthesizer
        self.player = player
        self.tts_settings = tts_settings or TTSSettings()

        self.registry = CommandRegistry()
        self.dispatcher = CommandDispatcher(self.registry, self.bus, min_confidence, history_size)
        recognition_config = recognition_config or RecognitionConfig()
        overrides = self.config.recognition_overrides()
        if overrides:
            recognition_config = dataclasses.replace(recognition_config, **overrides)
        self.recognition = RecognitionSession(engine, self.dispatcher, self.bus, recognition_config)

        self.last_response: Optional[str] = None
        self.last_command: Optional[str] = None
        self.is_voice_control_enabled = True
        self._custom_names: List[str] = []
        self._playback_tasks: Set[asyncio.Task] = set()
        self._closed = False

        for command in default_commands(self.recognition, self.bus):
            self.registry.register(command)
        self._register_chat_commands()
        for command in self.config.custom_commands:
            self.add_custom_command(command)

        self.bus.subscribe(VoiceCommandRequested, self._handle_request)
        self.bus.subscribe(CommandExecuted, self._on_command_executed)

        if self.config.enable_hands_free and self.recognition.is_supported:
            self.recognition.enable_hands_free()

    @classmethod
    def from_config(cls, actions: Optional[VoiceControlActions] = None, *, engine=None, bus=None,
                    synthesizer=None, player=None, config: Optional[dict] = None) -> "VoiceControlSession":
        config = config or Config.get_config()
        dispatcher = config.get("dispatcher", {})
        return cls(
            actions,
            VoiceControlConfig.from_config(config),
            engine=engine,
            bus=bus,
            synthesizer=synthesizer,
            player=player,
            tts_settings=TTSSettings.from_config(config),
            recognition_config=RecognitionConfig.from_config(config),
            min_confidence=dispatcher.get("min_confidence", MIN_CONFIDENCE),
            history_size=dispatcher.get("history_size", HISTORY_SIZE),
        )

    # ── state ────────────────────────────────────────────────────────────
    @property
    def is_listening(self) -> bool:
        return self.recognition.is_listening

    @property
    def is_hands_free_mode(self) -> bool:
        return self.recognition.is_hands_free_mode

    @property
    def is_supported(self) -> bool:
        return self.recognition.is_supported

    @property
    def command_history(self) -> List[str]:
        return self.dispatcher.history_names

    def status(self) -> Dict[str, Any]:
        status = self.recognition.status()
        status.update(
            last_command=self.last_command,
            command_history=self.command_history,
            is_voice_control_enabled=self.is_voice_control_enabled,
        )
        return status

    # ── listening controls ───────────────────────────────────────────────
    def start_listening(self) -> bool:
        if not self.is_voice_control_enabled:
            return False
        try:
            self.recognition.start()
        except UnsupportedCapabilityError as e:
            logger.error("Cannot start listening: %s", e)
            return False
        return True

    def stop_listening(self):
        self.recognition.stop()

    def enable_hands_free(self):
        self.recognition.enable_hands_free()

    def disable_hands_free(self):
        self.recognition.disable_hands_free()

    def toggle_hands_free(self):
        if self.is_hands_free_mode:
            self.disable_hands_free()
        else:
            self.enable_hands_free()

    def set_voice_control_enabled(self, enabled: bool):
        if enabled == self.is_voice_control_enabled:
            return
        self.is_voice_control_enabled = enabled
        if enabled:
            # chat commands go back ahead of custom ones, as at construction
            customs = [self.registry.get(name) for name in self._custom_names]
            for name in self._custom_names:
                self.registry.unregister(name)
            self._register_chat_commands()
            for command in customs:
                if command is not None:
                    self.registry.register(command)
        else:
            for name in CHAT_COMMANDS:
                self.registry.unregister(name)
        logger.info("Voice control %s", "enabled" if enabled else "disabled")

    # ── commands ─────────────────────────────────────────────────────────
    def get_voice_commands(self) -> List[VoiceCommand]:
        return self.registry.list()

    def add_custom_command(self, command: VoiceCommand):
        self.registry.register(command)
        self._custom_names.append(command.name)

    def remove_custom_command(self, name: str):
        self.registry.unregister(name)
        if name in self._custom_names:
            self._custom_names.remove(name)

    def _register_chat_commands(self):
        commands = [
            VoiceCommand("responder", ["responder [TEXTO]", "resposta [TEXTO]", "reply [TEXTO]"],
                         self._reply, CommandCategory.MESSAGE, "Responder com texto específico"),
            VoiceCommand("repetir_resposta", ["repetir", "repita", "repeat", "falar novamente"],
                         self._repeat_response, CommandCategory.CONTROL, "Repetir última resposta da IA"),
            VoiceCommand("velocidade_voz", list(SPEED_PHRASES),
                         self._adjust_speed, CommandCategory.CONTROL, "Ajustar velocidade da voz"),
            VoiceCommand("mudar_voz", ["mudar voz", "voz feminina", "voz masculina", "voz nova", "change voice"],
                         self._cycle_voice, CommandCategory.CONTROL, "Alternar entre vozes disponíveis"),
            VoiceCommand("modo_silencioso", ["modo silencioso", "silenciar", "sem áudio", "quiet mode"],
                         lambda params: self._set_muted(True), CommandCategory.CONTROL, "Ativar modo silencioso"),
            VoiceCommand("ativar_audio", ["ativar áudio", "com áudio", "unmute", "áudio ligado"],
                         lambda params: self._set_muted(False), CommandCategory.CONTROL, "Reativar áudio"),
            VoiceCommand("ajuda_comandos", ["ajuda", "comandos disponíveis", "help", "o que posso falar"],
                         self._list_commands, CommandCategory.SYSTEM, "Mostrar comandos disponíveis"),
        ]
        for command in commands:
            if command.name not in self.registry:
                self.registry.register(command)

    def _reply(self, params):
        text = params.get("text")
        if text and self.actions.on_send_message:
            return self.actions.on_send_message(text)

    def _repeat_response(self, params):
        if self.last_response:
            self._schedule_playback(self.last_response, interrupt=True)

    def _adjust_speed(self, params):
        match = self.dispatcher.last_match
        step = SPEED_PHRASES.get(match.phrase) if match else None
        if step is None:
            speed = NORMAL_SPEED
        else:
            speed = round(min(MAX_SPEED, max(MIN_SPEED, self.tts_settings.speed + step)), 2)
        self.tts_settings.speed = speed
        logger.info("Speech rate set to %.2f", speed)
        if self.actions.on_adjust_settings:
            return self.actions.on_adjust_settings("speed", speed)

    def _cycle_voice(self, params):
        current = self.tts_settings.voice if self.tts_settings.voice in VOICES else "nova"
        voice = VOICES[(VOICES.index(current) + 1) % len(VOICES)]
        self.tts_settings.voice = voice
        logger.info("Voice changed to %s", voice)
        if self.actions.on_adjust_settings:
            return self.actions.on_adjust_settings("voice", voice)

    def _set_muted(self, muted: bool):
        self.tts_settings.muted = muted
        if self.actions.on_adjust_settings:
            return self.actions.on_adjust_settings("muted", muted)

    def help_text(self) -> str:
        descriptions = [cmd.description for cmd in self.registry if cmd.description]
        return "Comandos disponíveis: " + ", ".join(descriptions)

    def _list_commands(self, params):
        text = self.help_text()
        logger.info(text)
        if self.config.auto_play_responses:
            self._schedule_playback(text)

    # ── bus handlers ─────────────────────────────────────────────────────
    def _on_command_executed(self, event: CommandExecuted):
        self.last_command = event.command.name

    def _handle_request(self, event: VoiceCommandRequested):
        actions = self.actions
        if event.action == "sendMessage":
            if event.text and actions.on_send_message:
                return actions.on_send_message(event.text)
        elif event.action == "newConversation":
            if actions.on_new_conversation:
                return actions.on_new_conversation()
        elif event.action == "clearChat":
            if actions.on_clear_chat:
                return actions.on_clear_chat()
        elif event.action == "toggleRecording":
            if actions.on_toggle_recording:
                return actions.on_toggle_recording()
        elif event.action == "navigateToPage":
            if event.page and actions.on_navigate_to_page:
                return actions.on_navigate_to_page(event.page)
        elif event.action == "selectConversation":
            if event.conversation_id and actions.on_select_conversation:
                return actions.on_select_conversation(event.conversation_id)
        elif event.action == "adjustSettings":
            if event.setting and actions.on_adjust_settings:
                return actions.on_adjust_settings(event.setting, event.value)
        else:
            logger.warning("Unknown voice command action %r", event.action)

    # ── speech output ────────────────────────────────────────────────────
    def set_response_for_tts(self, text: str):
        self.last_response = text
        if self.config.auto_play_responses and self.is_hands_free_mode:
            self._schedule_playback(text)

    def _schedule_playback(self, text: str, interrupt: bool = False):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; cannot play response")
            return None
        task = loop.create_task(self.play_text_to_speech(text, interrupt))
        self._playback_tasks.add(task)
        task.add_done_callback(self._playback_tasks.discard)
        return task

    async def play_text_to_speech(self, text: str, interrupt: bool = False) -> bool:
        if not self.config.auto_play_responses or self.tts_settings.muted:
            return False
        if self.synthesizer is None:
            logger.warning("No speech synthesizer configured; skipping playback")
            return False
        try:
            audio = await self.synthesizer.synthesize(
                text,
                voice=self.tts_settings.voice or "nova",
                speed=self.tts_settings.speed or 1.1,
                model=self.tts_settings.model,
            )
            if self.player is not None:
                await self.player.play_bytes(audio, interrupt=interrupt)
            return True
        except Exception as e:
            err = e if isinstance(e, PlaybackError) else PlaybackError(f"playback failed: {e}")
            logger.error("Text-to-speech failed: %s", err, exc_info=True)
            self.bus.emit(SpeechPlaybackFailed(text=text, error=str(err)))
            return False

    async def wait_for_playback(self):
        while self._playback_tasks:
            pending = list(self._playback_tasks)
            await asyncio.gather(*pending, return_exceptions=True)
            self._playback_tasks.difference_update(pending)

    def close(self):
        if self._closed:
            return
        self.recognition.close()
        self.bus.unsubscribe(VoiceCommandRequested, self._handle_request)
        self.bus.unsubscribe(CommandExecuted, self._on_command_executed)
        for name in list(self._custom_names):
            self.remove_custom_command(name)
        for name in CHAT_COMMANDS:
            self.registry.unregister(name)
        self._closed = True
        logger.info("Voice control session closed")
