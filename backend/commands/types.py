from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from proxy.types import PlayerInfo, TextColor, TextComponent

PLAYER_ONLY_MESSAGE = "This command can only be executed by players."


@dataclass
class CommandContext:
    """A parsed command invocation: who ran it and the words after the command name."""

    source: PlayerInfo | None
    name: str
    args: list[str] = field(default_factory=list)


CommandHandler = Callable[[CommandContext], Awaitable[list[TextComponent]]]


def text(content: str, color: TextColor | None = None, *, bold: bool = False) -> TextComponent:
    return TextComponent(content=content, color=color, bold=bold)


def error(content: str) -> list[TextComponent]:
    return [text(content, TextColor.RED)]
