"""The `ping` command: report the caller's proxy latency, with a per-player cooldown."""

from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING

from commands.types import error, text
from proxy.types import TextColor

if TYPE_CHECKING:
    from collections.abc import Callable

    from commands.types import CommandContext
    from proxy.types import TextComponent

DEFAULT_COOLDOWN_SECONDS = 30.0

# (upper bound exclusive in ms, label, color); anything slower is "Bad"
_HEALTH_TIERS = (
    (50, "Excellent", TextColor.GREEN),
    (100, "Good", TextColor.YELLOW),
    (150, "Fair", TextColor.GOLD),
    (250, "Poor", TextColor.RED),
)


def connection_health(ping_ms: int) -> tuple[str, TextColor]:
    for limit, label, color in _HEALTH_TIERS:
        if ping_ms < limit:
            return label, color
    return "Bad", TextColor.DARK_RED


class PingCommand:
    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._last_used: dict[str, float] = {}  # player uuid -> clock() timestamp

    async def __call__(self, context: CommandContext) -> list[TextComponent]:
        player = context.source
        if player is None:
            return error("You must be a player to run this command.")

        now = self._clock()
        last_used = self._last_used.get(player.uuid)
        if last_used is not None and now - last_used < self._cooldown:
            remaining = math.floor(self._cooldown - (now - last_used)) + 1
            return error(f"Please wait {remaining} seconds before using /ping again.")

        self._last_used[player.uuid] = now
        self._prune(now)

        if player.ping_ms is None:
            return [text("Your ping is not available right now.", TextColor.GRAY)]

        health, color = connection_health(player.ping_ms)
        return [
            text("Your ping: ", TextColor.GRAY),
            text(f"{player.ping_ms}ms", TextColor.WHITE, bold=True),
            text(" - ", TextColor.GRAY),
            text(health, color, bold=True),
        ]

    def _prune(self, now: float) -> None:
        """Forget cooldowns that have expired so the map does not grow without bound."""
        expired = [uuid for uuid, used in self._last_used.items() if now - used >= self._cooldown]
        for uuid in expired:
            del self._last_used[uuid]

