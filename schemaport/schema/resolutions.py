"""User resolutions for conflict report entries.

Item types can be reused as they are in the destination, renamed (new name
and api key, created as a fresh item type), or skipped. Plugins can be
reused or skipped. Every colliding entry needs one; new and identical
entries may carry one too (to skip them or to import a renamed copy).

Resolutions are checked in full before the import applier writes anything.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from schemaport.constants import API_KEY_PATTERN, RESERVED_API_KEYS
from schemaport.errors import ConflictUnresolvedError, InvalidResolutionError
from schemaport.schema.conflicts import ConflictReport, Disposition


class ItemTypeStrategy(str, Enum):
    REUSE_EXISTING = "reuse_existing"
    RENAME = "rename"
    SKIP = "skip"


class PluginStrategy(str, Enum):
    REUSE_EXISTING = "reuse_existing"
    SKIP = "skip"


@dataclass(frozen=True)
class ItemTypeResolution:
    """What to do with one export item type.

    ``name`` and ``api_key`` are only used by the rename strategy.
    """

    strategy: ItemTypeStrategy
    name: str | None = None
    api_key: str | None = None

    @classmethod
    def reuse_existing(cls) -> ItemTypeResolution:
        return cls(ItemTypeStrategy.REUSE_EXISTING)

    @classmethod
    def rename(cls, name: str, api_key: str) -> ItemTypeResolution:
        return cls(ItemTypeStrategy.RENAME, name=name, api_key=api_key)

    @classmethod
    def skip(cls) -> ItemTypeResolution:
        return cls(ItemTypeStrategy.SKIP)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        result: dict[str, Any] = {"strategy": self.strategy.value}
        if self.strategy is ItemTypeStrategy.RENAME:
            result["name"] = self.name
            result["api_key"] = self.api_key
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemTypeResolution:
        """Create ItemTypeResolution from dict.

        Raises:
            ValueError: If the strategy is unknown.
        """
        return cls(
            strategy=ItemTypeStrategy(data["strategy"]),
            name=data.get("name"),
            api_key=data.get("api_key"),
        )


@dataclass(frozen=True)
class PluginResolution:
    """What to do with one export plugin."""

    strategy: PluginStrategy

    @classmethod
    def reuse_existing(cls) -> PluginResolution:
        return cls(PluginStrategy.REUSE_EXISTING)

    @classmethod
    def skip(cls) -> PluginResolution:
        return cls(PluginStrategy.SKIP)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {"strategy": self.strategy.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PluginResolution:
        """Create PluginResolution from dict.

        Raises:
            ValueError: If the strategy is unknown.
        """
        return cls(strategy=PluginStrategy(data["strategy"]))


@dataclass
class Resolutions:
    """Resolutions keyed by export entity id."""

    item_types: dict[str, ItemTypeResolution] = field(default_factory=dict)
    plugins: dict[str, PluginResolution] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "item_types": {k: v.to_dict() for k, v in self.item_types.items()},
            "plugins": {k: v.to_dict() for k, v in self.plugins.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Resolutions:
        """Create Resolutions from dict."""
        return cls(
            item_types={
                str(k): ItemTypeResolution.from_dict(v)
                for k, v in (data.get("item_types") or {}).items()
            },
            plugins={
                str(k): PluginResolution.from_dict(v)
                for k, v in (data.get("plugins") or {}).items()
            },
        )


def check_api_key(api_key: str) -> str | None:
    """Return why an api key is unusable, or None if it is fine."""
    if not API_KEY_PATTERN.match(api_key):
        return (
            f"API key '{api_key}' must start with a lowercase letter, use only lowercase "
            "letters, digits and single underscores, and not end with an underscore"
        )
    if api_key in RESERVED_API_KEYS:
        return f"API key '{api_key}' is reserved"
    return None


def validate_resolutions(
    report: ConflictReport,
    resolutions: Resolutions,
    existing_api_keys: Iterable[str],
    existing_names: Iterable[str],
) -> None:
    """Check that the resolutions can be applied to the report.

    Args:
        report: Conflict report the resolutions answer.
        resolutions: The user's choices.
        existing_api_keys: Item type api keys already used in the destination.
        existing_names: Item type names already used in the destination.

    Raises:
        InvalidResolutionError: If a resolution targets an unknown entity,
            reuses an entity with no destination match, or renames to an
            unusable or clashing name/api key.
        ConflictUnresolvedError: If colliding entries are left without a resolution.
    """
    taken_api_keys = set(existing_api_keys)
    taken_names = set(existing_names)

    # New item types keep their own name/api key unless renamed
    for entry in report.item_types.values():
        if entry.disposition is Disposition.NEW and entry.export_id not in resolutions.item_types:
            taken_api_keys.add(entry.api_key or "")
            taken_names.add(entry.name)

    for export_id, resolution in resolutions.item_types.items():
        entry = report.item_types.get(export_id)
        if entry is None:
            raise InvalidResolutionError(export_id, "no such item type in the conflict report")

        if resolution.strategy is ItemTypeStrategy.REUSE_EXISTING:
            if entry.destination_id is None:
                raise InvalidResolutionError(
                    export_id, "nothing to reuse: the item type does not exist in the destination"
                )
        elif resolution.strategy is ItemTypeStrategy.RENAME:
            if not resolution.name or not resolution.api_key:
                raise InvalidResolutionError(export_id, "rename needs both a name and an API key")
            problem = check_api_key(resolution.api_key)
            if problem is not None:
                raise InvalidResolutionError(export_id, problem)
            if resolution.api_key in taken_api_keys:
                raise InvalidResolutionError(
                    export_id, f"API key '{resolution.api_key}' is already in use"
                )
            if resolution.name in taken_names:
                raise InvalidResolutionError(export_id, f"name '{resolution.name}' is already in use")
            taken_api_keys.add(resolution.api_key)
            taken_names.add(resolution.name)

    for export_id, plugin_resolution in resolutions.plugins.items():
        entry = report.plugins.get(export_id)
        if entry is None:
            raise InvalidResolutionError(export_id, "no such plugin in the conflict report")
        if (
            plugin_resolution.strategy is PluginStrategy.REUSE_EXISTING
            and entry.destination_id is None
        ):
            raise InvalidResolutionError(
                export_id, "nothing to reuse: the plugin is not installed in the destination"
            )

    unresolved = [
        f"{entry.kind} '{entry.label}'"
        for entry in report.item_types.values()
        if entry.disposition is Disposition.COLLIDING and entry.export_id not in resolutions.item_types
    ] + [
        f"{entry.kind} '{entry.label}'"
        for entry in report.plugins.values()
        if entry.disposition is Disposition.COLLIDING and entry.export_id not in resolutions.plugins
    ]
    if unresolved:
        raise ConflictUnresolvedError(unresolved)
