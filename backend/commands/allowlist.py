"""The `whitelist add|remove|list` command, restricted to operators."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from access.exceptions import PlayerNotFoundError, ProfileLookupError
from commands.types import PLAYER_ONLY_MESSAGE, error, text
from proxy.types import TextColor

if TYPE_CHECKING:
    from access.manager import AllowListManager
    from commands.types import CommandContext
    from proxy.types import PlayerInfo, TextComponent

logger = structlog.get_logger()

NOT_PERMITTED_MESSAGE = "You're not permitted to use this command."
USAGE_MESSAGE = "Usage: /whitelist <add|remove> <player> or /whitelist list"


class AllowListCommand:
    def __init__(self, manager: AllowListManager) -> None:
        self._manager = manager

    async def __call__(self, context: CommandContext) -> list[TextComponent]:
        player = context.source
        if player is None:
            return error(PLAYER_ONLY_MESSAGE)
        if not self._manager.is_operator(player.uuid):
            return error(NOT_PERMITTED_MESSAGE)

        match context.args:
            case ["add", target]:
                return await self._add(player, target)
            case ["remove", target]:
                return await self._remove(player, target)
            case ["list"]:
                return self._list()
            case _:
                return error(USAGE_MESSAGE)

    async def _add(self, operator: PlayerInfo, target: str) -> list[TextComponent]:
        try:
            entry = await self._manager.add_player(target)
        except PlayerNotFoundError:
            return error(f"Player '{target}' does not exist.")
        except ProfileLookupError as e:
            logger.warning("failed to look up player profile", username=target, error=str(e))
            return error(
                f"Failed to lookup player '{target}'. Error: {e}\nYou can manually edit whitelist.json if needed.",
            )
        except OSError:
            logger.exception("failed to add player to whitelist", player=target)
            return error(f"Failed to add {target} to the whitelist.")

        logger.info("player added to whitelist", target=entry.name, uuid=entry.uuid, added_by=operator.username)
        return [text(f"Added {entry.name} to the whitelist.", TextColor.GREEN)]

    async def _remove(self, operator: PlayerInfo, target: str) -> list[TextComponent]:
        try:
            entry = await self._manager.remove_player(target)
        except OSError:
            logger.exception("failed to remove player from whitelist", player=target)
            return error(f"Failed to remove {target} from the whitelist.")

        if entry is None:
            return error(f"Player '{target}' is not in the whitelist.")

        logger.info("player removed from whitelist", target=entry.name, removed_by=operator.username)
        return [text(f"Removed {entry.name} from the whitelist.", TextColor.GREEN)]

    def _list(self) -> list[TextComponent]:
        entries = self._manager.entries()
        if not entries:
            return [text("The whitelist is empty.", TextColor.YELLOW)]

        replies = [text(f"Whitelisted players ({len(entries)}):", TextColor.GOLD, bold=True)]
        replies.extend(text(f"\n  - {entry.name} ({entry.uuid})", TextColor.WHITE) for entry in entries)
        return replies
