"""Settings helpers for list-valued environment variables."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """Parse a list of strings from an environment value.

    Accepts a list (returned as-is), a JSON array string ('["a","b"]'),
    or a comma-separated string ('a,b'). Raises ValueError on malformed
    JSON, and on empty values unless allow_empty is set.
    """
    if isinstance(value, list):
        items = value
    else:
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                parsed = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON array: {e}") from e
            if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
                raise ValueError("JSON value must be an array of strings")
            items = parsed
        else:
            items = [part.strip() for part in stripped.split(",") if part.strip()]

    if not items and not allow_empty:
        raise ValueError("String list value must not be empty")
    return items


# Fields that must reach their validators as raw strings.
STRING_LIST_FIELDS = frozenset({"cors_origins", "stun_servers", "turn_servers"})


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env source that skips pydantic-settings' JSON pre-decoding for list fields.

    Without this, a CSV value such as ``BROKER_STUN_SERVERS=stun:a,stun:b``
    fails before ``parse_string_list`` ever runs.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in STRING_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
