# voice/command_registry.py
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from core.exceptions import DuplicateCommandError

logger = logging.getLogger(__name__)

CommandAction = Callable[[Dict[str, Any]], Any]


class CommandCategory(str, Enum):
    NAVIGATION = "navigation"
    MESSAGE = "message"
    CONTROL = "control"
    SYSTEM = "system"


@dataclass
class VoiceCommand:
    name: str
    phrases: List[str]
    action: CommandAction
    category: CommandCategory = CommandCategory.SYSTEM
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise ValueError("VoiceCommand needs a name")
        # keep declaration order, drop repeats
        self.phrases = list(dict.fromkeys(p.strip() for p in self.phrases if p and p.strip()))
        if not self.phrases:
            raise ValueError(f"VoiceCommand {self.name!r} needs at least one phrase")
        self.category = CommandCategory(self.category)


class CommandRegistry:
    """
    Ordered set of voice commands. Scan order is registration order, so an
    earlier command with an overlapping phrase always wins.
    """

    def __init__(self, commands: Optional[List[VoiceCommand]] = None):
        self._commands: List[VoiceCommand] = []
        for command in commands or ():
            self.register(command)

    def register(self, command: VoiceCommand, replace: bool = False):
        for index, existing in enumerate(self._commands):
            if existing.name == command.name:
                if not replace:
                    raise DuplicateCommandError(command.name)
                self._commands[index] = command
                logger.debug("Replaced voice command %s", command.name)
                return
        self._commands.append(command)
        logger.debug("Registered voice command %s (%s)", command.name, command.category.value)

    def unregister(self, name: str):
        before = len(self._commands)
        self._commands = [cmd for cmd in self._commands if cmd.name != name]
        if len(self._commands) != before:
            logger.debug("Unregistered voice command %s", name)

    def get(self, name: str) -> Optional[VoiceCommand]:
        return next((cmd for cmd in self._commands if cmd.name == name), None)

    def list(self) -> List[VoiceCommand]:
        return list(self._commands)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __iter__(self) -> Iterator[VoiceCommand]:
        return iter(list(self._commands))

    def __len__(self) -> int:
        return len(self._commands)
