from pydantic import BaseModel, Field


class AllowListEntry(BaseModel):
    """One allowed player, in the same shape as a Minecraft whitelist.json entry."""

    uuid: str = Field(min_length=1)
    name: str = Field(min_length=1)


class PlayerProfile(BaseModel):
    """Profile returned by the Mojang username lookup (id without dashes)."""

    id: str
    name: str
