import pytest

from core.exceptions import DuplicateCommandError
from voice.command_registry import CommandCategory, CommandRegistry, VoiceCommand


def make(name, *phrases, category="control"):
    return VoiceCommand(name=name, phrases=list(phrases) or [name], action=lambda params: None,
                        category=category, description=name)


def test_register_keeps_registration_order():
    registry = CommandRegistry()
    registry.register(make("b"))
    registry.register(make("a"))
    assert [cmd.name for cmd in registry.list()] == ["b", "a"]
    assert len(registry) == 2
    assert "a" in registry


def test_duplicate_name_is_rejected():
    registry = CommandRegistry([make("a")])
    with pytest.raises(DuplicateCommandError):
        registry.register(make("a", "outra frase"))


def test_replace_keeps_scan_position():
    registry = CommandRegistry([make("a"), make("b")])
    registry.register(make("a", "nova frase"), replace=True)
    assert [cmd.name for cmd in registry.list()] == ["a", "b"]
    assert registry.get("a").phrases == ["nova frase"]


def test_unregister_is_quiet_for_unknown_names():
    registry = CommandRegistry([make("a")])
    registry.unregister("missing")
    registry.unregister("a")
    assert registry.list() == []


def test_list_returns_a_copy():
    registry = CommandRegistry([make("a")])
    registry.list().clear()
    assert len(registry) == 1


def test_voice_command_validates_fields():
    command = make("a", "x", "x", " y ", category="navigation")
    assert command.phrases == ["x", "y"]
    assert command.category is CommandCategory.NAVIGATION
    with pytest.raises(ValueError):
        VoiceCommand(name="empty", phrases=[], action=lambda params: None)
    with pytest.raises(ValueError):
        make("bad", category="other")
