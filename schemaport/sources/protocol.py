"""SchemaSource protocol: the read-only lookup contract the engine consumes.

Two classes implement it: ``ExportSchemaSource`` (backed by an export
document) and ``ProjectSchemaSource`` (backed by a live project through a
``SchemaReader``). Graph building, export building and conflict detection
work against either one.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from schemaport.models.entities import Field, Fieldset, ItemType, Plugin


@runtime_checkable
class SchemaSource(Protocol):
    """Where item types, fields, fieldsets and plugins come from.

    Entities are fetched at most once per source instance; repeated lookups
    return the cached value.
    """

    async def get_all_item_types(self) -> list[ItemType]:
        """Return every item type (models and block models)."""
        ...

    async def get_all_plugins(self) -> list[Plugin]:
        """Return every plugin."""
        ...

    async def get_item_type_by_id(self, item_type_id: str) -> ItemType:
        """Return an item type.

        Raises:
            EntityNotFoundError: If no item type has this id.
        """
        ...

    async def get_item_type_by_api_key(self, api_key: str) -> ItemType:
        """Return an item type by api key.

        Raises:
            EntityNotFoundError: If no item type has this api key.
        """
        ...

    async def get_item_type_by_name(self, name: str) -> ItemType:
        """Return an item type by name.

        Raises:
            EntityNotFoundError: If no item type has this name.
        """
        ...

    async def get_plugin_by_id(self, plugin_id: str) -> Plugin:
        """Return a plugin.

        Raises:
            EntityNotFoundError: If no plugin has this id.
        """
        ...

    async def get_item_type_fields_and_fieldsets(
        self, item_type: ItemType
    ) -> tuple[list[Field], list[Fieldset]]:
        """Return an item type's fields and fieldsets, ordered by position.

        Block models never have fieldsets; the second element is always
        empty for them.
        """
        ...

    async def get_known_plugin_ids(self) -> frozenset[str]:
        """Return the ids of the plugins this source knows about.

        An editor id outside this set (and outside the built-in editors)
        is a dangling reference, not a plugin.
        """
        ...
