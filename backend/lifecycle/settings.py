"""Instance lifecycle configuration via environment variables or config.yml."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field
from pydantic_settings import BaseSettings

from shared.config import YamlSectionSettingsSource

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource

DEFAULT_STARTING_MESSAGE = "Server is starting up! Please wait 30-60 seconds and try again."


class ControllerSettings(BaseSettings):
    model_config = {"env_prefix": "GCP_CONTROLLER_", "env_file": ".env", "extra": "ignore"}

    # Compute Engine instance backing the managed server -- required, no defaults.
    project_id: str = Field(min_length=1)
    zone: str = Field(min_length=1)
    instance_name: str = Field(min_length=1)
    # Proxy-side name of the backend server this controller governs.
    server_name: str = Field(min_length=1)

    # Service account JSON; application default credentials when unset.
    credentials_path: str | None = None

    idle_timeout_seconds: float = Field(default=1800, gt=0)
    startup_threshold_seconds: float = Field(default=300, ge=0)
    no_join_timeout_seconds: float = Field(default=300, gt=0)
    starting_message: str = Field(default=DEFAULT_STARTING_MESSAGE, min_length=1)

    operation_timeout_seconds: float = Field(default=120, gt=0)
    request_timeout_seconds: float = Field(default=10, gt=0)
    probe_timeout_seconds: float = Field(default=3, gt=0)

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
            YamlSectionSettingsSource(settings_cls, "gcp_controller"),
            file_secret_settings,
        )
