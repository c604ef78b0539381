"""Username to UUID lookup through the Mojang profile API."""

import re
from http import HTTPStatus

import httpx
import structlog
from pydantic import ValidationError

from access.exceptions import PlayerNotFoundError, ProfileLookupError
from access.models import AllowListEntry, PlayerProfile

logger = structlog.get_logger()

_UNDASHED_UUID_LENGTH = 32
_USERNAME_RE = re.compile(r"[A-Za-z0-9_]{1,16}")


def format_uuid(raw: str) -> str:
    """Insert dashes into a 32-character UUID; other values are returned unchanged."""
    if len(raw) != _UNDASHED_UUID_LENGTH:
        return raw
    return f"{raw[0:8]}-{raw[8:12]}-{raw[12:16]}-{raw[16:20]}-{raw[20:32]}"


class MojangProfileClient:
    def __init__(self, base_url: str, timeout_seconds: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds

    async def lookup(self, username: str) -> AllowListEntry:
        """Resolve a username to its canonical name and dashed UUID.

        Raises PlayerNotFoundError when the account does not exist or the
        name is not a valid Minecraft username, and ProfileLookupError for
        transport errors or unexpected responses.
        """
        # Minecraft account names are 1-16 chars of [A-Za-z0-9_]
        if not _USERNAME_RE.fullmatch(username):
            raise PlayerNotFoundError(username)

        url = f"{self._base_url}/{username}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url)
        except httpx.RequestError as exc:
            raise ProfileLookupError(f"Failed to contact profile API: {exc}") from exc

        if response.status_code in (HTTPStatus.NOT_FOUND, HTTPStatus.NO_CONTENT):
            raise PlayerNotFoundError(username)
        if response.status_code != HTTPStatus.OK:
            raise ProfileLookupError(f"Profile API returned status {response.status_code}")

        try:
            profile = PlayerProfile.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProfileLookupError("Failed to parse profile API response") from exc

        logger.debug("resolved player profile", username=username, uuid=profile.id)
        return AllowListEntry(uuid=format_uuid(profile.id), name=profile.name)
