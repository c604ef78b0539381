"""Shared validation helpers for settings classes."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import BaseSettings, EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


def parse_string_list(value: str | list[str] | None, *, allow_empty: bool = True) -> list[str]:
    """Parse a list of strings from an environment variable or config value.

    Accepts a list (returned with blank items dropped), a JSON array string
    ('["a","b"]') or a comma-separated string ('a,b'). Raises ValueError for
    malformed JSON, and for an empty result when allow_empty is False.
    """
    if value is None:
        result: list[str] = []
    elif isinstance(value, list):
        result = [item.strip() for item in value if item.strip()]
    elif value.strip().startswith("["):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            raise ValueError("JSON value must be an array of strings")
        result = [item.strip() for item in parsed if item.strip()]
    else:
        result = [item.strip() for item in value.split(",") if item.strip()]

    if not allow_empty and not result:
        raise ValueError("String list value must not be empty")
    return result


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env source that hands string-list fields to validators as raw strings.

    pydantic-settings JSON-decodes list-typed fields from env vars before
    validators run, which rejects the comma-separated form. The listed fields
    skip that step so parse_string_list sees the original text.
    """

    def __init__(self, settings_cls: type[BaseSettings], *, list_fields: frozenset[str]) -> None:
        super().__init__(settings_cls)
        self._list_fields = list_fields

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in self._list_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
