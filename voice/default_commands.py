# voice/default_commands.py
import asyncio
from typing import List

from core.event_bus import EventBus
from events.events import VoiceCommandRequested
from voice.command_registry import CommandCategory, VoiceCommand
from voice.recognition_session import RecognitionSession


def default_commands(session: RecognitionSession, bus: EventBus) -> List[VoiceCommand]:
    """
    Base navigation, message, control and system commands.

    Hands-free deactivation is listed ahead of activation and of the plain
    stop command, since "sair do modo hands-free" and "parar conversa
    contínua" also contain their trigger words.
    """

    def request(action: str, **fields):
        tasks = bus.emit(VoiceCommandRequested(action=action, **fields))
        # async handlers finish under the dispatcher, which reports their failures
        if tasks:
            return asyncio.gather(*tasks)

    def send_message(params):
        if params.get("text"):
            return request("sendMessage", text=params["text"])

    return [
        VoiceCommand(
            name="nova_conversa",
            phrases=["nova conversa", "criar conversa", "começar conversa"],
            action=lambda params: request("newConversation"),
            category=CommandCategory.NAVIGATION,
            description="Iniciar uma nova conversa",
        ),
        VoiceCommand(
            name="enviar_mensagem",
            phrases=["enviar [TEXTO]", "mandar [TEXTO]", "dizer [TEXTO]"],
            action=send_message,
            category=CommandCategory.MESSAGE,
            description="Enviar uma mensagem",
        ),
        VoiceCommand(
            name="desativar_handsfree",
            phrases=["desativar hands-free", "sair do modo hands-free", "parar conversa contínua"],
            action=lambda params: session.disable_hands_free(),
            category=CommandCategory.CONTROL,
            description="Desativar modo hands-free",
        ),
        VoiceCommand(
            name="ativar_handsfree",
            phrases=["modo hands-free", "ativar hands-free", "conversa contínua"],
            action=lambda params: session.enable_hands_free(),
            category=CommandCategory.CONTROL,
            description="Ativar modo hands-free",
        ),
        VoiceCommand(
            name="parar_gravacao",
            phrases=["parar", "pare", "stop", "parar gravação"],
            action=lambda params: session.stop(),
            category=CommandCategory.CONTROL,
            description="Parar a gravação de voz",
        ),
        VoiceCommand(
            name="limpar_chat",
            phrases=["limpar chat", "apagar mensagens", "limpar conversa"],
            action=lambda params: request("clearChat"),
            category=CommandCategory.SYSTEM,
            description="Limpar o chat atual",
        ),
    ]
