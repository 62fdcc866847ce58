"""Schema entity dataclasses: item types, fields, fieldsets and plugins.

Entities keep the content API's JSON:API shape (``id``, ``type``,
``attributes``, ``relationships``, optional ``meta``) so they round-trip
through export documents untouched. Typed properties expose the handful of
attributes the engine reasons about.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from schemaport.constants import reference_validator_paths


def read_path(data: dict[str, Any] | None, path: str, default: Any = None) -> Any:
    """Read a dotted path (``"a.b.c"``) from nested dicts."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def write_path(data: dict[str, Any], path: str, value: Any) -> None:
    """Write a dotted path into nested dicts, creating intermediate dicts."""
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def _relationship_id(relationships: dict[str, Any], name: str) -> str | None:
    handle = read_path(relationships, f"{name}.data")
    if isinstance(handle, dict) and handle.get("id") is not None:
        return str(handle["id"])
    return None


def _relationship_ids(relationships: dict[str, Any], name: str) -> list[str] | None:
    handles = read_path(relationships, f"{name}.data")
    if not isinstance(handles, list):
        return None
    return [str(h["id"]) for h in handles if isinstance(h, dict) and "id" in h]


def _to_dict(entity: Entity) -> dict[str, Any]:
    result: dict[str, Any] = {
        "id": entity.id,
        "type": entity.type,
        "attributes": copy.deepcopy(entity.attributes),
    }
    if entity.relationships:
        result["relationships"] = copy.deepcopy(entity.relationships)
    if entity.meta is not None:
        result["meta"] = copy.deepcopy(entity.meta)
    return result


def _common_kwargs(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(data["id"]),
        "attributes": copy.deepcopy(data.get("attributes") or {}),
        "relationships": copy.deepcopy(data.get("relationships") or {}),
        "meta": copy.deepcopy(data.get("meta")),
    }


@dataclass
class ItemType:
    """A model or block model definition.

    Attributes:
        id: Entity id in the project (or document) it came from.
        attributes: Raw attributes (``api_key``, ``name``, ``modular_block``...).
        relationships: Raw relationships (``fields``, ``fieldsets``,
            presentation fields such as ``title_field``).
        meta: Raw meta block, if any.
    """

    type: ClassVar[str] = "item_type"

    id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    relationships: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] | None = None

    @property
    def api_key(self) -> str:
        return str(self.attributes.get("api_key", ""))

    @property
    def name(self) -> str:
        return str(self.attributes.get("name", ""))

    @property
    def is_block(self) -> bool:
        return bool(self.attributes.get("modular_block", False))

    @property
    def is_singleton(self) -> bool:
        return bool(self.attributes.get("singleton", False))

    @property
    def field_ids(self) -> list[str] | None:
        """Ids listed in ``relationships.fields``, or None when not present."""
        return _relationship_ids(self.relationships, "fields")

    @property
    def fieldset_ids(self) -> list[str] | None:
        """Ids listed in ``relationships.fieldsets``, or None when not present."""
        return _relationship_ids(self.relationships, "fieldsets")

    def relationship_id(self, name: str) -> str | None:
        """Return the id held by a to-one relationship such as ``title_field``."""
        return _relationship_id(self.relationships, name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemType:
        """Create ItemType from dict."""
        return cls(**_common_kwargs(data))


@dataclass
class Field:
    """A field belonging to exactly one item type.

    ``validators`` may embed item type ids (see
    :func:`schemaport.constants.reference_validator_paths`), and
    ``appearance`` may embed plugin ids (editor and addons).
    """

    type: ClassVar[str] = "field"

    id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    relationships: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] | None = None

    @property
    def api_key(self) -> str:
        return str(self.attributes.get("api_key", ""))

    @property
    def label(self) -> str:
        return str(self.attributes.get("label", ""))

    @property
    def field_type(self) -> str:
        return str(self.attributes.get("field_type", ""))

    @property
    def localized(self) -> bool:
        return bool(self.attributes.get("localized", False))

    @property
    def validators(self) -> dict[str, Any]:
        return self.attributes.get("validators") or {}

    @property
    def appearance(self) -> dict[str, Any]:
        return self.attributes.get("appearance") or {}

    @property
    def editor(self) -> str | None:
        editor = self.appearance.get("editor")
        return str(editor) if editor is not None else None

    @property
    def addon_ids(self) -> list[str]:
        return [str(a["id"]) for a in self.appearance.get("addons") or [] if "id" in a]

    @property
    def position(self) -> int:
        return int(self.attributes.get("position") or 0)

    @property
    def item_type_id(self) -> str:
        owner = _relationship_id(self.relationships, "item_type")
        if owner is None:
            raise ValueError(f"Field '{self.id}' does not declare its item type")
        return owner

    @property
    def fieldset_id(self) -> str | None:
        return _relationship_id(self.relationships, "fieldset")

    def linked_item_type_ids(self) -> list[str]:
        """Item type ids referenced by this field's validators, in validator order."""
        seen: dict[str, None] = {}
        for path in reference_validator_paths(self.field_type):
            for linked_id in read_path(self.validators, path, []) or []:
                seen[str(linked_id)] = None
        return list(seen)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Field:
        """Create Field from dict."""
        return cls(**_common_kwargs(data))


@dataclass
class Fieldset:
    """A named, ordered group of sibling fields inside one model."""

    type: ClassVar[str] = "fieldset"

    id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    relationships: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] | None = None

    @property
    def title(self) -> str:
        return str(self.attributes.get("title", ""))

    @property
    def position(self) -> int:
        return int(self.attributes.get("position") or 0)

    @property
    def item_type_id(self) -> str | None:
        return _relationship_id(self.relationships, "item_type")

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Fieldset:
        """Create Fieldset from dict."""
        return cls(**_common_kwargs(data))


@dataclass
class Plugin:
    """An installed extension, referenced by field editors and addons."""

    type: ClassVar[str] = "plugin"

    id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    relationships: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] | None = None

    @property
    def name(self) -> str:
        return str(self.attributes.get("name", ""))

    @property
    def package_name(self) -> str | None:
        return self.attributes.get("package_name") or None

    @property
    def package_version(self) -> str | None:
        return self.attributes.get("package_version") or None

    @property
    def url(self) -> str | None:
        return self.attributes.get("url") or None

    @property
    def identity_key(self) -> str:
        """Key used to match the same plugin across projects."""
        if self.package_name:
            return f"package:{self.package_name}"
        if self.url:
            return f"url:{self.url}"
        return f"name:{self.name}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return _to_dict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plugin:
        """Create Plugin from dict."""
        return cls(**_common_kwargs(data))


Entity = Union[ItemType, Field, Fieldset, Plugin]

_ENTITY_CLASSES: dict[str, type[ItemType] | type[Field] | type[Fieldset] | type[Plugin]] = {
    "item_type": ItemType,
    "field": Field,
    "fieldset": Fieldset,
    "plugin": Plugin,
}


def parse_entity(data: dict[str, Any]) -> Entity:
    """Create the right entity class from a tagged dict.

    Raises:
        ValueError: If the ``type`` tag is missing or unknown, or ``id`` is missing.
    """
    tag = data.get("type")
    entity_cls = _ENTITY_CLASSES.get(str(tag))
    if entity_cls is None:
        raise ValueError(f"Unknown entity type: {tag!r}")
    if data.get("id") is None:
        raise ValueError(f"Entity of type {tag!r} has no id")
    return entity_cls.from_dict(data)
