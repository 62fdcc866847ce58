"""Configuration for the schemaport engine.

Settings resolve with the following precedence (highest to lowest):
1. Explicit argument passed by the caller
2. Settings file (``schemaport.yaml``, path passed explicitly)
3. Built-in default

The engine never reads environment variables and never looks for a settings
file on its own; callers that want one pass its path.

Usage:
    from schemaport.config import get_setting, load_settings

    # Resolve a single setting
    concurrency = get_setting("concurrency", explicit_value=None, config_path=path)

    # Load and validate everything at once
    settings = load_settings(path)
    report = await build_conflicts(export_source, project_source, settings=settings)

Example schemaport.yaml:
    concurrency: 4
    fetch_concurrency: 2
    ignored_field_attributes:
      - label
      - hint
      - position
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from schemaport.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_FETCH_CONCURRENCY,
    DEFAULT_IGNORED_FIELD_ATTRIBUTES,
)
from schemaport.errors import ConfigInvalidValueError, ConfigParseError

CONFIG_FILENAME = "schemaport.yaml"

DEFAULTS: dict[str, Any] = {
    "concurrency": DEFAULT_CONCURRENCY,
    "fetch_concurrency": DEFAULT_FETCH_CONCURRENCY,
    "ignored_field_attributes": list(DEFAULT_IGNORED_FIELD_ATTRIBUTES),
}

# Known settings for documentation/validation (but unknown keys are still allowed)
KNOWN_SETTINGS: frozenset[str] = frozenset(DEFAULTS)


def load_config(path: Path) -> dict[str, Any]:
    """Load a settings file.

    Args:
        path: Path to the YAML file.

    Returns:
        Config dictionary. Returns empty dict if the file doesn't exist or is empty.

    Raises:
        ConfigParseError: If the file is not valid YAML or not a mapping.
    """
    if not path.exists():
        return {}

    content = path.read_text(encoding="utf-8")
    if not content.strip():
        return {}

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigParseError(str(path), str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigParseError(str(path), "top-level value must be a mapping")
    return data


def save_config(path: Path, config: dict[str, Any]) -> None:
    """Save a settings file, creating parent directories as needed.

    Args:
        path: Path to the YAML file.
        config: Config dictionary to save.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Use default_flow_style=False for readable multi-line YAML
    content = yaml.safe_dump(config, default_flow_style=False, sort_keys=False)
    path.write_text(content, encoding="utf-8")


def get_setting(
    key: str,
    explicit_value: Any | None = None,
    config_path: Path | None = None,
) -> Any | None:
    """Resolve a setting with full precedence.

    Args:
        key: Setting key (e.g., "concurrency").
        explicit_value: Value passed by the caller (highest precedence).
        config_path: Settings file to consult.

    Returns:
        Resolved value, or the built-in default (None for unknown keys).
    """
    if explicit_value is not None:
        return explicit_value

    if config_path is not None:
        config = load_config(config_path)
        if key in config:
            return config[key]

    return DEFAULTS.get(key)


@dataclass(frozen=True)
class EngineSettings:
    """Validated engine settings.

    Attributes:
        concurrency: Max concurrent writes for sibling fieldsets/fields.
        fetch_concurrency: Max concurrent field/fieldset reads per project source.
        ignored_field_attributes: Field attributes the conflict builder
            ignores when deciding identical vs colliding.
    """

    concurrency: int = DEFAULT_CONCURRENCY
    fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY
    ignored_field_attributes: tuple[str, ...] = DEFAULT_IGNORED_FIELD_ATTRIBUTES

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dict suitable for ``save_config``."""
        return {
            "concurrency": self.concurrency,
            "fetch_concurrency": self.fetch_concurrency,
            "ignored_field_attributes": list(self.ignored_field_attributes),
        }


def _positive_int(key: str, value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigInvalidValueError(key, value, "a positive integer")
    return value


def _string_list(key: str, value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigInvalidValueError(key, value, "a list of strings")
    return tuple(value)


def load_settings(
    config_path: Path | None = None,
    *,
    concurrency: int | None = None,
    fetch_concurrency: int | None = None,
    ignored_field_attributes: list[str] | None = None,
) -> EngineSettings:
    """Resolve and validate every engine setting.

    Keyword arguments take precedence over the file, the file over defaults.

    Raises:
        ConfigParseError: If the settings file is malformed.
        ConfigInvalidValueError: If a value has the wrong type or range.
    """
    return EngineSettings(
        concurrency=_positive_int(
            "concurrency", get_setting("concurrency", concurrency, config_path)
        ),
        fetch_concurrency=_positive_int(
            "fetch_concurrency",
            get_setting("fetch_concurrency", fetch_concurrency, config_path),
        ),
        ignored_field_attributes=_string_list(
            "ignored_field_attributes",
            get_setting("ignored_field_attributes", ignored_field_attributes, config_path),
        ),
    )
