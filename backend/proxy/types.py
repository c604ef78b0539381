"""Pydantic models for events and replies exchanged with the game proxy."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TextColor(StrEnum):
    """Named chat colors understood by the proxy."""

    GREEN = "green"
    YELLOW = "yellow"
    GOLD = "gold"
    RED = "red"
    DARK_RED = "dark_red"
    WHITE = "white"
    GRAY = "gray"


class TextComponent(BaseModel):
    """One styled run of chat text."""

    content: str
    color: TextColor | None = None
    bold: bool = False


class PlayerInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uuid: str = Field(min_length=1)
    username: str = Field(min_length=1, max_length=32)
    ping_ms: int | None = Field(default=None, ge=0)


class ServerInfo(BaseModel):
    """A backend server registered with the proxy."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    address: str = ""  # host:port the proxy forwards to


class TargetServer(ServerInfo):
    """The server a connection attempt is headed for; its address gets probed."""

    address: str = Field(min_length=1)


class ConnectionAttemptEvent(BaseModel):
    """A player is about to connect to a backend server."""

    player: PlayerInfo
    target: TargetServer


class JoinedEvent(BaseModel):
    """A player finished connecting to a backend server.

    previous_server is set when the player switched from another backend
    without leaving the proxy.
    """

    player: PlayerInfo
    server: ServerInfo
    previous_server: ServerInfo | None = None


class DisconnectedEvent(BaseModel):
    """A player left the proxy. server is None if they never reached a backend."""

    player: PlayerInfo
    server: ServerInfo | None = None


class ConnectionDecision(BaseModel):
    allowed: bool
    message: TextComponent | None = None

    @classmethod
    def allow(cls) -> ConnectionDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, content: str, color: TextColor | None = None) -> ConnectionDecision:
        return cls(allowed=False, message=TextComponent(content=content, color=color))


class CommandRequest(BaseModel):
    """A command line typed by a player (source) or the proxy console (no source)."""

    source: PlayerInfo | None = None
    command: str = Field(min_length=1, max_length=256)


class CommandResponse(BaseModel):
    replies: list[TextComponent]
