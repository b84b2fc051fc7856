import logging

import pytest

from core.exceptions import PlaybackError
from events.events import CommandExecuted, SpeechPlaybackFailed, VoiceCommandRequested
from voice.command_registry import VoiceCommand
from voice.recognition_session import RecognitionConfig
from voice.voice_module import (
    CHAT_COMMANDS,
    TTSSettings,
    VoiceControlActions,
    VoiceControlConfig,
    VoiceControlSession,
)

from conftest import Recorder, StubPlayer, StubSynthesizer, collect


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def actions(recorder):
    return VoiceControlActions(
        on_send_message=recorder("send"),
        on_new_conversation=recorder("new"),
        on_clear_chat=recorder("clear"),
        on_toggle_recording=recorder("toggle"),
        on_navigate_to_page=recorder("navigate"),
        on_select_conversation=recorder("select"),
        on_adjust_settings=recorder("settings"),
    )


@pytest.fixture
def synthesizer():
    return StubSynthesizer()


@pytest.fixture
def player():
    return StubPlayer()


@pytest.fixture
def session(actions, fake_engine, bus, synthesizer, player):
    session = VoiceControlSession(
        actions,
        engine=fake_engine,
        bus=bus,
        synthesizer=synthesizer,
        player=player,
        recognition_config=RecognitionConfig(restart_delay=0.02, error_restart_delay=0.02),
    )
    yield session
    session.close()


def say(engine, transcript, confidence=0.9):
    engine.result(transcript, confidence)


def test_default_and_chat_commands_are_registered(session):
    names = [cmd.name for cmd in session.get_voice_commands()]
    assert names[:6] == [
        "nova_conversa", "enviar_mensagem", "desativar_handsfree",
        "ativar_handsfree", "parar_gravacao", "limpar_chat",
    ]
    assert names[6:] == list(CHAT_COMMANDS)


def test_new_conversation_fires_once(session, fake_engine, recorder):
    session.start_listening()
    say(fake_engine, "nova conversa", confidence=0.5)
    assert recorder.named("new") == []

    say(fake_engine, "nova conversa", confidence=0.9)
    assert recorder.named("new") == [()]
    assert session.last_command == "nova_conversa"


def test_send_message_goes_through_the_bus(session, fake_engine, bus, recorder):
    requests = collect(bus, VoiceCommandRequested)
    session.start_listening()
    say(fake_engine, "Enviar olá pessoal")
    assert requests[0].action == "sendMessage"
    assert recorder.named("send") == [("olá pessoal",)]


def test_reply_calls_send_message_directly(session, fake_engine, recorder):
    session.start_listening()
    say(fake_engine, "responder tudo certo")
    assert recorder.named("send") == [("tudo certo",)]
    assert session.command_history == ["responder"]


def test_clear_chat(session, fake_engine, recorder):
    session.start_listening()
    say(fake_engine, "pode limpar o chat")
    assert recorder.named("clear") == [()]


@pytest.mark.parametrize("event, name, args", [
    (VoiceCommandRequested(action="navigateToPage", page="settings"), "navigate", ("settings",)),
    (VoiceCommandRequested(action="selectConversation", conversation_id="c-42"), "select", ("c-42",)),
    (VoiceCommandRequested(action="adjustSettings", setting="voice", value="echo"), "settings", ("voice", "echo")),
    (VoiceCommandRequested(action="toggleRecording"), "toggle", ()),
])
def test_bus_requests_reach_application_callbacks(session, bus, recorder, event, name, args):
    bus.emit(event)
    assert recorder.named(name) == [args]


def test_missing_callbacks_are_skipped(fake_engine, bus):
    session = VoiceControlSession(engine=fake_engine, bus=bus)
    session.start_listening()
    say(fake_engine, "nova conversa")
    bus.emit(VoiceCommandRequested(action="navigateToPage", page="home"))
    bus.emit(VoiceCommandRequested(action="somethingElse"))
    assert session.command_history == ["nova_conversa"]


def test_failing_callback_does_not_break_dispatch(fake_engine, bus, recorder):
    def explode():
        raise RuntimeError("db down")

    actions = VoiceControlActions(on_new_conversation=explode, on_clear_chat=recorder("clear"))
    session = VoiceControlSession(actions, engine=fake_engine, bus=bus)
    session.start_listening()

    say(fake_engine, "nova conversa")
    say(fake_engine, "limpar chat")

    assert recorder.named("clear") == [()]
    assert session.command_history == ["limpar_chat"]


@pytest.mark.asyncio
async def test_async_callback_through_the_bus_is_tracked(fake_engine, bus, caplog):
    cleared = []

    async def new_conversation():
        raise RuntimeError("db down")

    async def clear_chat():
        cleared.append(True)

    actions = VoiceControlActions(on_new_conversation=new_conversation, on_clear_chat=clear_chat)
    session = VoiceControlSession(actions, engine=fake_engine, bus=bus)
    session.start_listening()

    with caplog.at_level(logging.ERROR, logger="voice.command_dispatcher"):
        say(fake_engine, "nova conversa", 0.95)
        say(fake_engine, "limpar chat", 0.95)
        await session.dispatcher.drain()

    assert cleared == [True]
    assert "nova_conversa" in caplog.text
    assert "db down" in caplog.text
    session.close()


def test_unmatched_speech_does_nothing(session, fake_engine, recorder):
    executed = collect(session.bus, CommandExecuted)
    session.start_listening()
    say(fake_engine, "qual é a capital da frança")
    assert recorder.calls == []
    assert executed == []


def test_hands_free_commands(session, fake_engine):
    session.start_listening()
    say(fake_engine, "ativar hands-free")
    assert session.is_hands_free_mode

    say(fake_engine, "sair do modo hands-free")
    assert not session.is_hands_free_mode
    assert not session.is_listening


def test_stop_command(session, fake_engine):
    session.start_listening()
    say(fake_engine, "pare")
    assert not session.is_listening


def test_mute_and_unmute(session, fake_engine, recorder):
    session.start_listening()
    say(fake_engine, "modo silencioso")
    assert session.tts_settings.muted
    say(fake_engine, "ativar audio")
    assert not session.tts_settings.muted
    assert recorder.named("settings") == [("muted", True), ("muted", False)]


def test_change_voice_cycles(session, fake_engine, recorder):
    session.start_listening()
    say(fake_engine, "mudar voz")
    say(fake_engine, "change voice")
    assert recorder.named("settings") == [("voice", "shimmer"), ("voice", "alloy")]
    assert session.tts_settings.voice == "alloy"


def test_speech_rate_commands(session, fake_engine, recorder):
    session.start_listening()
    say(fake_engine, "falar mais rápido")
    assert session.tts_settings.speed == 1.35
    say(fake_engine, "velocidade lenta")
    assert session.tts_settings.speed == 1.1
    say(fake_engine, "velocidade normal")
    assert session.tts_settings.speed == 1.0
    assert recorder.named("settings")[-1] == ("speed", 1.0)


def test_disabling_voice_control_removes_chat_commands(session, fake_engine):
    session.set_voice_control_enabled(False)
    names = [cmd.name for cmd in session.get_voice_commands()]
    assert not set(CHAT_COMMANDS) & set(names)
    assert session.start_listening() is False

    session.set_voice_control_enabled(True)
    session.start_listening()
    say(fake_engine, "silenciar")
    assert session.tts_settings.muted


def test_reenabling_voice_control_keeps_command_order(fake_engine, bus):
    custom = VoiceCommand(name="abrir_ajustes", phrases=["abrir ajustes"], action=lambda params: None)
    session = VoiceControlSession(
        config=VoiceControlConfig(custom_commands=[custom]), engine=fake_engine, bus=bus,
    )
    before = [cmd.name for cmd in session.get_voice_commands()]

    session.set_voice_control_enabled(False)
    session.set_voice_control_enabled(True)

    assert [cmd.name for cmd in session.get_voice_commands()] == before
    assert before[-1] == "abrir_ajustes"
    session.close()


def test_custom_commands_are_added_and_removed(fake_engine, bus):
    calls = []
    custom = VoiceCommand(name="abrir_ajustes", phrases=["abrir ajustes"], action=calls.append)
    session = VoiceControlSession(
        config=VoiceControlConfig(custom_commands=[custom]), engine=fake_engine, bus=bus,
    )
    session.start_listening()
    say(fake_engine, "abrir ajustes")
    assert calls == [{}]

    session.close()
    assert "abrir_ajustes" not in session.registry
    assert "responder" not in session.registry


def test_history_is_bounded(session, fake_engine):
    session.start_listening()
    for _ in range(8):
        say(fake_engine, "mudar voz")
        say(fake_engine, "limpar chat")
    assert len(session.command_history) == 10
    assert session.command_history[0] == "limpar_chat"
    assert session.status()["command_history"] == session.command_history


def test_unsupported_platform(bus):
    session = VoiceControlSession(bus=bus)
    assert not session.is_supported
    assert session.start_listening() is False
    assert session.status()["is_supported"] is False


@pytest.mark.asyncio
async def test_response_is_spoken_in_hands_free_mode(session, synthesizer, player):
    session.set_response_for_tts("Olá! Como posso ajudar?")
    await session.wait_for_playback()
    assert synthesizer.calls == []

    session.enable_hands_free()
    session.set_response_for_tts("Olá! Como posso ajudar?")
    await session.wait_for_playback()

    assert synthesizer.calls == [{
        "text": "Olá! Como posso ajudar?", "voice": "nova", "speed": 1.1, "model": "tts-1-hd",
    }]
    assert player.played == [b"ID3-fake-mp3"]


@pytest.mark.asyncio
async def test_repeat_replays_last_response(session, fake_engine, synthesizer, player):
    session.set_response_for_tts("resposta anterior")
    session.start_listening()
    say(fake_engine, "repetir")
    await session.wait_for_playback()
    assert [c["text"] for c in synthesizer.calls] == ["resposta anterior"]
    assert player.interrupts == [True]


@pytest.mark.asyncio
async def test_help_lists_command_descriptions(session, fake_engine, synthesizer):
    session.start_listening()
    say(fake_engine, "ajuda")
    await session.wait_for_playback()
    spoken = synthesizer.calls[0]["text"]
    assert spoken.startswith("Comandos disponíveis: ")
    assert "Iniciar uma nova conversa" in spoken


@pytest.mark.asyncio
async def test_muted_session_skips_playback(session, synthesizer):
    session.tts_settings.muted = True
    assert await session.play_text_to_speech("oi") is False
    assert synthesizer.calls == []


@pytest.mark.asyncio
async def test_playback_failure_is_contained(actions, fake_engine, bus, player):
    failures = collect(bus, SpeechPlaybackFailed)
    session = VoiceControlSession(
        actions, engine=fake_engine, bus=bus,
        synthesizer=StubSynthesizer(error=PlaybackError("tts down")), player=player,
    )
    assert await session.play_text_to_speech("oi") is False
    assert player.played == []
    assert failures[0].error == "tts down"
    assert session.is_listening is False


def test_tts_settings_from_config():
    settings = TTSSettings.from_config({"tts": {"voice": "echo", "speed": 1.5}})
    assert settings.voice == "echo"
    assert settings.speed == 1.5
    assert settings.model == "tts-1-hd"
