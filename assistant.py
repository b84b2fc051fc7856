# assistant.py

import asyncio
import logging

from config import Config
from core.event_bus import EventBus
from audio.capture import MicrophoneStream
from audio.player import AudioPlayer
from events.events import CommandExecuted, RecognitionFailed, TranscriptReceived
from voice.stt_module import TranscriptionClient
from voice.tts_httpx import SpeechSynthesisClient
from voice.vad_engine import VadSpeechEngine
from voice.voice_module import VoiceControlActions, VoiceControlSession

logger = logging.getLogger("assistant")


def build_session(bus: EventBus, actions: VoiceControlActions) -> VoiceControlSession:
    config = Config.get_config()
    engine = VadSpeechEngine.from_config(
        TranscriptionClient(),
        lambda: MicrophoneStream.from_config(config),
        config,
    )
    return VoiceControlSession.from_config(
        actions,
        engine=engine,
        bus=bus,
        synthesizer=SpeechSynthesisClient(),
        player=AudioPlayer.from_config(config),
        config=config,
    )


async def main():
    bus = EventBus()

    actions = VoiceControlActions(
        on_send_message=lambda text: logger.info("[APP] send message: %s", text),
        on_new_conversation=lambda: logger.info("[APP] new conversation"),
        on_clear_chat=lambda: logger.info("[APP] clear chat"),
        on_toggle_recording=lambda: logger.info("[APP] toggle recording"),
        on_navigate_to_page=lambda page: logger.info("[APP] navigate to %s", page),
        on_select_conversation=lambda cid: logger.info("[APP] select conversation %s", cid),
        on_adjust_settings=lambda key, value: logger.info("[APP] setting %s = %r", key, value),
    )

    def show_transcript(ev: TranscriptReceived):
        marker = "final" if ev.result.is_final else "interim"
        logger.info("[%s %.2f] %s", marker, ev.result.confidence, ev.result.transcript)

    bus.subscribe(TranscriptReceived, show_transcript)
    bus.subscribe(CommandExecuted, lambda ev: logger.info("Command %s %s", ev.command.name, ev.params))
    bus.subscribe(RecognitionFailed, lambda ev: logger.warning("Recognition error: %s", ev.code))

    session = build_session(bus, actions)
    session.enable_hands_free()
    try:
        # run forever
        await asyncio.Event().wait()
    finally:
        session.close()
        if session.player is not None:
            session.player.stop_queue()


def run():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
