"""Allow-list configuration via environment variables or config.yml."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.config import YamlSectionSettingsSource
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class AllowListSettings(BaseSettings):
    model_config = {"env_prefix": "WHITELIST_", "env_file": ".env", "extra": "ignore"}

    enabled: bool = True
    kick_message: str = Field(default="You are not whitelisted on this server!", min_length=1)
    file: str = Field(default="whitelist.json", min_length=1)
    # Player UUIDs allowed to run whitelist commands.
    operators: list[str] = []

    profile_api_url: str = "https://api.mojang.com/users/profiles/minecraft"
    lookup_timeout_seconds: float = Field(default=10, gt=0)

    @field_validator("operators", mode="before")
    @classmethod
    def validate_operators(cls, v: str | list[str] | None) -> list[str]:
        return [uuid.lower() for uuid in parse_string_list(v)]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            StringListEnvSettingsSource(settings_cls, list_fields=frozenset({"operators"})),
            dotenv_settings,
            YamlSectionSettingsSource(settings_cls, "whitelist"),
            file_secret_settings,
        )
