"""HTTP adapter configuration via environment variables or config.yml."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field
from pydantic_settings import BaseSettings

from shared.config import YamlSectionSettingsSource

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class ServerSettings(BaseSettings):
    model_config = {"env_prefix": "WAKEGATE_", "env_file": ".env", "extra": "ignore"}

    log_dir: str | None = None
    # Shared secret the proxy sends as X-API-Key; unauthenticated when unset.
    api_key: str | None = Field(default=None, min_length=1)
    ping_cooldown_seconds: float = Field(default=30, ge=0)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSectionSettingsSource(settings_cls, "server"),
            file_secret_settings,
        )
