"""Schema source backed by an export document."""

from __future__ import annotations

from schemaport.errors import EntityNotFoundError
from schemaport.models.document import ExportDocument, normalize_export_document
from schemaport.models.entities import Field, Fieldset, ItemType, Plugin
from schemaport.sources.cache import EntityCache


class ExportSchemaSource:
    """Answers schema lookups from the entities of an export document.

    The document is normalised to version 2 on construction, so
    ``root_item_type`` is always available. Everything is indexed up front;
    the async methods never suspend.
    """

    def __init__(self, document: ExportDocument) -> None:
        self.document = normalize_export_document(document)
        self.cache = EntityCache()

        item_types: list[ItemType] = []
        plugins: list[Plugin] = []
        fields_by_owner: dict[str, list[Field]] = {}
        fieldsets: list[Fieldset] = []
        for entity in self.document.entities:
            if isinstance(entity, ItemType):
                item_types.append(entity)
            elif isinstance(entity, Plugin):
                plugins.append(entity)
            elif isinstance(entity, Field):
                fields_by_owner.setdefault(entity.item_type_id, []).append(entity)
            else:
                fieldsets.append(entity)

        self.cache.store_item_types(item_types)
        self.cache.store_plugins(plugins)

        fieldset_owner = self._fieldset_owners(item_types, fieldsets)
        for item_type in item_types:
            fields = sorted(fields_by_owner.get(item_type.id, []), key=lambda f: f.position)
            self.cache.store_fields(item_type.id, fields)
            if item_type.is_block:
                self.cache.store_fieldsets(item_type.id, [])
            else:
                owned = [fs for fs in fieldsets if fieldset_owner.get(fs.id) == item_type.id]
                self.cache.store_fieldsets(item_type.id, sorted(owned, key=lambda fs: fs.position))

        root_id = self.document.root_item_type_id
        assert root_id is not None  # guaranteed by normalize_export_document
        self.root_item_type = self.item_type(root_id)

    @staticmethod
    def _fieldset_owners(item_types: list[ItemType], fieldsets: list[Fieldset]) -> dict[str, str]:
        """Map fieldset id to owner id, from either side of the relationship."""
        owners: dict[str, str] = {}
        for fieldset in fieldsets:
            if fieldset.item_type_id is not None:
                owners[fieldset.id] = fieldset.item_type_id
        for item_type in item_types:
            for fieldset_id in item_type.fieldset_ids or []:
                owners.setdefault(fieldset_id, item_type.id)
        return owners

    # Synchronous accessors, used by the conflict builder and import applier

    @property
    def item_types(self) -> list[ItemType]:
        return self.cache.all_item_types()

    @property
    def plugins(self) -> list[Plugin]:
        return self.cache.all_plugins()

    def item_type(self, item_type_id: str) -> ItemType:
        item_type = self.cache.item_type(item_type_id)
        if item_type is None:
            raise EntityNotFoundError("Item type", item_type_id)
        return item_type

    def plugin(self, plugin_id: str) -> Plugin:
        plugin = self.cache.plugin(plugin_id)
        if plugin is None:
            raise EntityNotFoundError("Plugin", plugin_id)
        return plugin

    def fields_of(self, item_type_id: str) -> list[Field]:
        return self.cache.fields(item_type_id) or []

    def fieldsets_of(self, item_type_id: str) -> list[Fieldset]:
        return self.cache.fieldsets(item_type_id) or []

    # SchemaSource

    async def get_all_item_types(self) -> list[ItemType]:
        return self.item_types

    async def get_all_plugins(self) -> list[Plugin]:
        return self.plugins

    async def get_item_type_by_id(self, item_type_id: str) -> ItemType:
        return self.item_type(item_type_id)

    async def get_item_type_by_api_key(self, api_key: str) -> ItemType:
        item_type = self.cache.item_type_by_api_key(api_key)
        if item_type is None:
            raise EntityNotFoundError("Item type", api_key, by="API key")
        return item_type

    async def get_item_type_by_name(self, name: str) -> ItemType:
        item_type = self.cache.item_type_by_name(name)
        if item_type is None:
            raise EntityNotFoundError("Item type", name, by="name")
        return item_type

    async def get_plugin_by_id(self, plugin_id: str) -> Plugin:
        return self.plugin(plugin_id)

    async def get_item_type_fields_and_fieldsets(
        self, item_type: ItemType
    ) -> tuple[list[Field], list[Fieldset]]:
        fieldsets = [] if item_type.is_block else self.fieldsets_of(item_type.id)
        return self.fields_of(item_type.id), fieldsets

    async def get_known_plugin_ids(self) -> frozenset[str]:
        return frozenset(p.id for p in self.plugins)
