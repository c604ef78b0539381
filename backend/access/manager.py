from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from access.models import AllowListEntry
from proxy.types import ConnectionDecision, TextColor

if TYPE_CHECKING:
    from access.profiles import MojangProfileClient
    from access.settings import AllowListSettings
    from access.store import FileAllowListStore
    from proxy.directory import PlayerDirectory
    from proxy.types import ConnectionAttemptEvent

logger = structlog.get_logger()


class AllowListManager:
    """Access control by player UUID, plus the operations behind the whitelist commands."""

    def __init__(
        self,
        store: FileAllowListStore,
        settings: AllowListSettings,
        profiles: MojangProfileClient,
        directory: PlayerDirectory,
    ) -> None:
        self._store = store
        self._settings = settings
        self._profiles = profiles
        self._directory = directory
        self._operators = frozenset(settings.operators)

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    async def load(self) -> None:
        await self._store.load()

    async def check_connection(self, event: ConnectionAttemptEvent) -> ConnectionDecision | None:
        """Deny players who are not listed. Returns None (no objection) otherwise."""
        if not self._settings.enabled:
            return None

        player = event.player
        if not self._store.contains(player.uuid):
            logger.info("blocking non-whitelisted player", player=player.username, uuid=player.uuid)
            return ConnectionDecision.deny(self._settings.kick_message, TextColor.RED)

        logger.debug("allowing whitelisted player", player=player.username, uuid=player.uuid)
        return None

    def is_operator(self, uuid: str) -> bool:
        return uuid.lower() in self._operators

    async def add_player(self, username: str) -> AllowListEntry:
        """Allow a player, resolving the UUID from online players first, then the profile API.

        Raises PlayerNotFoundError / ProfileLookupError from the lookup and
        OSError if the list cannot be saved.
        """
        online = self._directory.find_by_username(username)
        if online is not None:
            entry = AllowListEntry(uuid=online.uuid, name=online.username)
        else:
            logger.info("player not online, looking up profile", username=username)
            entry = await self._profiles.lookup(username)

        await self._store.add(entry)
        return entry

    async def remove_player(self, username: str) -> AllowListEntry | None:
        """Remove a listed player by name. Returns the removed entry, or None if not listed."""
        entry = self._store.find_by_name(username)
        if entry is None:
            return None
        await self._store.remove(entry.uuid)
        return entry

    def entries(self) -> list[AllowListEntry]:
        return self._store.list_entries()
