from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from proxy.types import DisconnectedEvent, JoinedEvent, PlayerInfo


class PlayerDirectory:
    """Players currently connected to any backend behind the proxy.

    Fed by join and disconnect notifications. Lookups are by username,
    case-insensitive, which is how operators type them in commands.
    """

    def __init__(self) -> None:
        self._players: dict[str, PlayerInfo] = {}  # uuid -> PlayerInfo

    async def record_join(self, event: JoinedEvent) -> None:
        self._players[event.player.uuid] = event.player

    async def record_disconnect(self, event: DisconnectedEvent) -> None:
        self._players.pop(event.player.uuid, None)

    def find_by_username(self, username: str) -> PlayerInfo | None:
        lower = username.lower()
        return next((p for p in self._players.values() if p.username.lower() == lower), None)

    @property
    def online_count(self) -> int:
        return len(self._players)
