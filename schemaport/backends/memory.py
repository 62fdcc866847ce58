"""In-memory project backend implementing both SchemaReader and SchemaWriter.

Holds a whole project schema in dicts. Used for dry runs against a snapshot,
for building export documents from fixture data, and as the destination in
tests. It enforces the same integrity rules the real content API does for
the operations the engine uses:

- item type ``api_key`` and ``name`` are unique
- fieldsets only exist on models, never on block models
- field ``api_key`` is unique within its item type
- a field may only reference item types, plugins, fieldsets and title
  fields that already exist

Limitations:
    - No locales; localized default values are stored as given
    - Positions are stored, never renumbered
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from typing import Any

from schemaport.backends.protocol import EntityPayload
from schemaport.constants import BUILTIN_EDITORS, PRESENTATION_RELATIONSHIPS
from schemaport.models.entities import (
    Entity,
    Field,
    Fieldset,
    ItemType,
    Plugin,
    read_path,
)

logger = logging.getLogger(__name__)


class InMemorySchemaBackend:
    """Project schema held in memory.

    Every call suspends once (``asyncio.sleep(latency)``) so callers see the
    same suspension points they would against a network API.
    """

    def __init__(
        self,
        entities: list[Entity] | None = None,
        *,
        latency: float = 0.0,
        id_prefix: str = "new",
    ) -> None:
        """Initialize the backend.

        Args:
            entities: Seed entities; ids are preserved.
            latency: Seconds to sleep on every call.
            id_prefix: Prefix for ids assigned to created entities.
        """
        self.latency = latency
        self._ids = itertools.count(1)
        self._id_prefix = id_prefix
        self._item_types: dict[str, ItemType] = {}
        self._fields: dict[str, Field] = {}
        self._fieldsets: dict[str, Fieldset] = {}
        self._plugins: dict[str, Plugin] = {}
        self.calls: list[tuple[str, str]] = []

        for entity in entities or []:
            self._seed(copy.deepcopy(entity))

    def _seed(self, entity: Entity) -> None:
        if isinstance(entity, ItemType):
            self._item_types[entity.id] = entity
        elif isinstance(entity, Field):
            self._fields[entity.id] = entity
        elif isinstance(entity, Fieldset):
            self._fieldsets[entity.id] = entity
        else:
            self._plugins[entity.id] = entity

    async def _suspend(self) -> None:
        await asyncio.sleep(self.latency)

    def _next_id(self, data: EntityPayload) -> str:
        requested = data.get("id")
        if requested:
            if requested in self._all_ids():
                raise ValueError(f"id '{requested}' is already taken")
            return str(requested)
        return f"{self._id_prefix}-{next(self._ids)}"

    def _all_ids(self) -> set[str]:
        return set(self._item_types) | set(self._fields) | set(self._fieldsets) | set(self._plugins)

    def _require_item_type(self, item_type_id: str) -> ItemType:
        item_type = self._item_types.get(item_type_id)
        if item_type is None:
            raise KeyError(f"item type '{item_type_id}' does not exist")
        return item_type

    def entities(self) -> list[Entity]:
        """Return a deep copy of every stored entity (plugins, item types, fieldsets, fields)."""
        stored: list[Entity] = [
            *self._plugins.values(),
            *self._item_types.values(),
            *self._fieldsets.values(),
            *self._fields.values(),
        ]
        return copy.deepcopy(stored)

    # ------------------------------------------------------------------
    # SchemaReader
    # ------------------------------------------------------------------

    async def list_item_types(self) -> list[EntityPayload]:
        await self._suspend()
        return [self._payload(it) for it in self._item_types.values()]

    async def list_plugins(self) -> list[EntityPayload]:
        await self._suspend()
        return [self._payload(p) for p in self._plugins.values()]

    async def list_fields(self, item_type_id: str) -> list[EntityPayload]:
        await self._suspend()
        self._require_item_type(item_type_id)
        fields = [f for f in self._fields.values() if f.item_type_id == item_type_id]
        return [self._payload(f) for f in sorted(fields, key=lambda f: f.position)]

    async def list_fieldsets(self, item_type_id: str) -> list[EntityPayload]:
        await self._suspend()
        self._require_item_type(item_type_id)
        fieldsets = [fs for fs in self._fieldsets.values() if fs.item_type_id == item_type_id]
        return [self._payload(fs) for fs in sorted(fieldsets, key=lambda fs: fs.position)]

    @staticmethod
    def _payload(entity: Entity) -> EntityPayload:
        payload: EntityPayload = entity.to_dict()  # type: ignore[assignment]
        return payload

    # ------------------------------------------------------------------
    # SchemaWriter
    # ------------------------------------------------------------------

    async def create_item_type(self, data: EntityPayload) -> EntityPayload:
        await self._suspend()
        attributes = copy.deepcopy(data.get("attributes") or {})
        api_key = attributes.get("api_key")
        name = attributes.get("name")
        for existing in self._item_types.values():
            if existing.api_key == api_key:
                raise ValueError(f"api_key '{api_key}' is already taken")
            if existing.name == name:
                raise ValueError(f"name '{name}' is already taken")

        item_type = ItemType(
            id=self._next_id(data),
            attributes=attributes,
            relationships={"fields": {"data": []}, "fieldsets": {"data": []}},
        )
        self._item_types[item_type.id] = item_type
        self.calls.append(("create_item_type", item_type.id))
        logger.debug("Created item type %s (%s)", item_type.id, api_key)
        return self._payload(item_type)

    async def update_item_type(self, item_type_id: str, data: EntityPayload) -> EntityPayload:
        await self._suspend()
        item_type = self._require_item_type(item_type_id)
        item_type.attributes.update(copy.deepcopy(data.get("attributes") or {}))
        for name, handle in (data.get("relationships") or {}).items():
            if name in PRESENTATION_RELATIONSHIPS:
                field_id = read_path(handle, "data.id")
                if field_id is not None:
                    field = self._fields.get(str(field_id))
                    if field is None or field.item_type_id != item_type_id:
                        raise ValueError(
                            f"{name} '{field_id}' is not a field of item type '{item_type_id}'"
                        )
            item_type.relationships[name] = copy.deepcopy(handle)
        self.calls.append(("update_item_type", item_type_id))
        return self._payload(item_type)

    async def create_plugin(self, data: EntityPayload) -> EntityPayload:
        await self._suspend()
        plugin = Plugin(id="", attributes=copy.deepcopy(data.get("attributes") or {}))
        for existing in self._plugins.values():
            if existing.identity_key == plugin.identity_key:
                raise ValueError(f"plugin '{plugin.identity_key}' is already installed")
        plugin.id = self._next_id(data)
        self._plugins[plugin.id] = plugin
        self.calls.append(("create_plugin", plugin.id))
        return self._payload(plugin)

    async def create_fieldset(self, item_type_id: str, data: EntityPayload) -> EntityPayload:
        await self._suspend()
        item_type = self._require_item_type(item_type_id)
        if item_type.is_block:
            raise ValueError(f"block model '{item_type.api_key}' cannot have fieldsets")
        fieldset = Fieldset(
            id=self._next_id(data),
            attributes=copy.deepcopy(data.get("attributes") or {}),
            relationships={"item_type": {"data": {"type": "item_type", "id": item_type_id}}},
        )
        self._fieldsets[fieldset.id] = fieldset
        item_type.relationships.setdefault("fieldsets", {"data": []})["data"].append(
            {"type": "fieldset", "id": fieldset.id}
        )
        self.calls.append(("create_fieldset", fieldset.id))
        return self._payload(fieldset)

    async def create_field(self, item_type_id: str, data: EntityPayload) -> EntityPayload:
        await self._suspend()
        item_type = self._require_item_type(item_type_id)
        relationships = copy.deepcopy(data.get("relationships") or {})
        relationships["item_type"] = {"data": {"type": "item_type", "id": item_type_id}}
        field = Field(
            id="",
            attributes=copy.deepcopy(data.get("attributes") or {}),
            relationships=relationships,
        )
        for sibling in self._fields.values():
            if sibling.item_type_id == item_type_id and sibling.api_key == field.api_key:
                raise ValueError(
                    f"field '{field.api_key}' already exists on item type '{item_type_id}'"
                )
        self._check_field_references(field)
        field.id = self._next_id(data)
        self._fields[field.id] = field
        item_type.relationships.setdefault("fields", {"data": []})["data"].append(
            {"type": "field", "id": field.id}
        )
        self.calls.append(("create_field", field.id))
        return self._payload(field)

    async def update_field(self, field_id: str, data: EntityPayload) -> EntityPayload:
        await self._suspend()
        field = self._fields.get(field_id)
        if field is None:
            raise KeyError(f"field '{field_id}' does not exist")
        updated = copy.deepcopy(field)
        updated.attributes.update(copy.deepcopy(data.get("attributes") or {}))
        self._check_field_references(updated)
        self._fields[field_id] = updated
        self.calls.append(("update_field", field_id))
        return self._payload(updated)

    def _check_field_references(self, field: Field) -> None:
        for linked_id in field.linked_item_type_ids():
            if linked_id not in self._item_types:
                raise ValueError(f"field '{field.api_key}' references unknown item type '{linked_id}'")

        editor = field.editor
        if editor is not None and editor not in BUILTIN_EDITORS and editor not in self._plugins:
            raise ValueError(f"field '{field.api_key}' uses unknown editor '{editor}'")
        for addon_id in field.addon_ids:
            if addon_id not in self._plugins:
                raise ValueError(f"field '{field.api_key}' uses unknown addon '{addon_id}'")

        fieldset_id = field.fieldset_id
        if fieldset_id is not None and fieldset_id not in self._fieldsets:
            raise ValueError(f"field '{field.api_key}' references unknown fieldset '{fieldset_id}'")

        title_field_id = read_path(field.validators, "slug_title_field.title_field_id")
        if title_field_id is not None and str(title_field_id) not in self._fields:
            raise ValueError(
                f"field '{field.api_key}' references unknown title field '{title_field_id}'"
            )
