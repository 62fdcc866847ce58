"""EntityCache: per-source memoization of fetched schema entities.

The cache is a plain value object injected into a schema source. Entries are
append-only: once an item type's fields are stored they are never replaced,
only dropped wholesale by ``refresh()``. Nothing here is module-global, so
two sources never share state unless the caller hands them the same cache.
"""

from __future__ import annotations

from schemaport.models.entities import Field, Fieldset, ItemType, Plugin


class EntityCache:
    """Lookup maps for item types, plugins, and per-item-type fields/fieldsets."""

    def __init__(self) -> None:
        self.refresh()

    def refresh(self) -> None:
        """Drop every entry; the next lookups refetch from the source.

        All maps are rebound in one synchronous step, so a coroutine never
        observes a half-cleared cache.
        """
        self._item_types: dict[str, ItemType] = {}
        self._item_types_by_api_key: dict[str, ItemType] = {}
        self._item_types_by_name: dict[str, ItemType] = {}
        self._plugins: dict[str, Plugin] = {}
        self._fields: dict[str, list[Field]] = {}
        self._fieldsets: dict[str, list[Fieldset]] = {}
        self.item_types_loaded = False
        self.plugins_loaded = False

    # Item types

    def store_item_types(self, item_types: list[ItemType]) -> None:
        """Store the complete item type list. Ignored if already loaded."""
        if self.item_types_loaded:
            return
        for item_type in item_types:
            self._item_types.setdefault(item_type.id, item_type)
            self._item_types_by_api_key.setdefault(item_type.api_key, item_type)
            self._item_types_by_name.setdefault(item_type.name, item_type)
        self.item_types_loaded = True

    def item_type(self, item_type_id: str) -> ItemType | None:
        return self._item_types.get(item_type_id)

    def item_type_by_api_key(self, api_key: str) -> ItemType | None:
        return self._item_types_by_api_key.get(api_key)

    def item_type_by_name(self, name: str) -> ItemType | None:
        return self._item_types_by_name.get(name)

    def all_item_types(self) -> list[ItemType]:
        return list(self._item_types.values())

    # Plugins

    def store_plugins(self, plugins: list[Plugin]) -> None:
        """Store the complete plugin list. Ignored if already loaded."""
        if self.plugins_loaded:
            return
        for plugin in plugins:
            self._plugins.setdefault(plugin.id, plugin)
        self.plugins_loaded = True

    def plugin(self, plugin_id: str) -> Plugin | None:
        return self._plugins.get(plugin_id)

    def all_plugins(self) -> list[Plugin]:
        return list(self._plugins.values())

    # Fields and fieldsets

    def store_fields(self, item_type_id: str, fields: list[Field]) -> list[Field]:
        """Store an item type's fields; returns whatever ends up cached."""
        return self._fields.setdefault(item_type_id, list(fields))

    def fields(self, item_type_id: str) -> list[Field] | None:
        return self._fields.get(item_type_id)

    def store_fieldsets(self, item_type_id: str, fieldsets: list[Fieldset]) -> list[Fieldset]:
        """Store an item type's fieldsets; returns whatever ends up cached."""
        return self._fieldsets.setdefault(item_type_id, list(fieldsets))

    def fieldsets(self, item_type_id: str) -> list[Fieldset] | None:
        return self._fieldsets.get(item_type_id)
