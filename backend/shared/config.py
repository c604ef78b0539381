"""Settings loading: YAML config file source and fatal configuration errors.

Every settings class reads, in priority order: init kwargs, environment
variables, `.env`, its section of the YAML config file, then file secrets.
The YAML file path comes from WAKEGATE_CONFIG_FILE (default: config.yml);
a missing file contributes nothing.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

logger = structlog.get_logger()

CONFIG_FILE_ENV = "WAKEGATE_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config.yml"


class ConfigurationError(Exception):
    """Required settings are missing or invalid; the service must not start."""


def resolve_config_file() -> Path:
    return Path(os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE))


def read_config_section(path: Path, section: str) -> dict[str, Any]:
    """Return one top-level mapping from a YAML config file ({} when absent)."""
    if not path.exists():
        return {}

    try:
        with path.open(encoding="utf-8") as f:
            document = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as exc:
        raise ConfigurationError(f"Failed to read config file {path}") from exc

    if not isinstance(document, dict):
        raise ConfigurationError(f"Expected a mapping at the root of {path}")
    values = document.get(section) or {}
    if not isinstance(values, dict):
        raise ConfigurationError(f"Expected a mapping under '{section}' in {path}")
    return values


class YamlSectionSettingsSource(PydanticBaseSettingsSource):
    """Feed one section of the YAML config file into a settings class."""

    def __init__(self, settings_cls: type[BaseSettings], section: str, path: Path | None = None) -> None:
        super().__init__(settings_cls)
        self._section = section
        self._path = path or resolve_config_file()
        self._values = read_config_section(self._path, section)

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        return self._values.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        known = self.settings_cls.model_fields
        unknown = sorted(key for key in self._values if key not in known)
        if unknown:
            logger.warning("ignoring unknown config keys", section=self._section, keys=unknown, path=str(self._path))
        return {key: value for key, value in self._values.items() if key in known}


def load_settings[SettingsT: BaseSettings](settings_cls: type[SettingsT]) -> SettingsT:
    """Instantiate a settings class, turning validation failures into ConfigurationError."""
    try:
        return settings_cls()
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}" for error in exc.errors()
        )
        raise ConfigurationError(f"Invalid {settings_cls.__name__}: {problems}") from exc
