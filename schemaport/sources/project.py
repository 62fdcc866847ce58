"""Schema source backed by a live project, read through a SchemaReader.

Lookups are lazy: the item type list, the plugin list, and each item type's
fields and fieldsets are fetched on first use and memoised in the injected
EntityCache. Concurrent lookups of the same key share one request, and
per-item-type reads are throttled so a large selection does not burst the
content API's rate limit.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from schemaport.backends.protocol import SchemaReader
from schemaport.config import EngineSettings
from schemaport.constants import DEFAULT_FETCH_CONCURRENCY
from schemaport.errors import EntityNotFoundError
from schemaport.models.entities import Field, Fieldset, ItemType, Plugin
from schemaport.sources.cache import EntityCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProjectSchemaSource:
    """Answers schema lookups from a live project.

    Args:
        reader: Content API client (read side).
        cache: Cache to memoise into. A fresh one is created when omitted;
            pass a shared one to reuse lookups across sources.
        known_plugin_ids: Installed plugin ids, when the caller already
            knows them. Skips the plugin listing in ``get_known_plugin_ids``.
        fetch_concurrency: Max concurrent field/fieldset reads. Overrides
            ``settings.fetch_concurrency``.
        settings: Engine settings supplying the read throttle.
    """

    def __init__(
        self,
        reader: SchemaReader,
        *,
        cache: EntityCache | None = None,
        known_plugin_ids: Iterable[str] | None = None,
        fetch_concurrency: int | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        if fetch_concurrency is None:
            fetch_concurrency = (
                settings.fetch_concurrency if settings is not None else DEFAULT_FETCH_CONCURRENCY
            )
        self.reader = reader
        self.cache = cache if cache is not None else EntityCache()
        self._known_plugin_ids = (
            frozenset(known_plugin_ids) if known_plugin_ids is not None else None
        )
        self._throttle = asyncio.Semaphore(max(1, fetch_concurrency))
        self._locks: dict[str, asyncio.Lock] = {}

    def refresh(self) -> None:
        """Forget everything fetched so far."""
        self.cache.refresh()
        self._locks = {}
        logger.debug("Project schema cache cleared")

    async def _memoised(
        self,
        key: str,
        cached: Callable[[], T | None],
        fetch: Callable[[], Awaitable[T]],
    ) -> T:
        value = cached()
        if value is not None:
            return value
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            value = cached()
            if value is None:
                value = await fetch()
        return value

    async def _load_item_types(self) -> None:
        async def fetch() -> bool:
            payloads = await self.reader.list_item_types()
            self.cache.store_item_types([ItemType.from_dict(p) for p in payloads])  # type: ignore[arg-type]
            logger.debug("Fetched %d item types", len(payloads))
            return True

        await self._memoised("item_types", lambda: self.cache.item_types_loaded or None, fetch)

    async def _load_plugins(self) -> None:
        async def fetch() -> bool:
            payloads = await self.reader.list_plugins()
            self.cache.store_plugins([Plugin.from_dict(p) for p in payloads])  # type: ignore[arg-type]
            logger.debug("Fetched %d plugins", len(payloads))
            return True

        await self._memoised("plugins", lambda: self.cache.plugins_loaded or None, fetch)

    async def get_all_item_types(self) -> list[ItemType]:
        await self._load_item_types()
        return self.cache.all_item_types()

    async def get_all_models(self) -> list[ItemType]:
        return [it for it in await self.get_all_item_types() if not it.is_block]

    async def get_all_block_models(self) -> list[ItemType]:
        return [it for it in await self.get_all_item_types() if it.is_block]

    async def get_all_plugins(self) -> list[Plugin]:
        await self._load_plugins()
        return self.cache.all_plugins()

    async def get_item_type_by_id(self, item_type_id: str) -> ItemType:
        await self._load_item_types()
        item_type = self.cache.item_type(item_type_id)
        if item_type is None:
            raise EntityNotFoundError("Item type", item_type_id)
        return item_type

    async def get_item_type_by_api_key(self, api_key: str) -> ItemType:
        await self._load_item_types()
        item_type = self.cache.item_type_by_api_key(api_key)
        if item_type is None:
            raise EntityNotFoundError("Item type", api_key, by="API key")
        return item_type

    async def get_item_type_by_name(self, name: str) -> ItemType:
        await self._load_item_types()
        item_type = self.cache.item_type_by_name(name)
        if item_type is None:
            raise EntityNotFoundError("Item type", name, by="name")
        return item_type

    async def get_plugin_by_id(self, plugin_id: str) -> Plugin:
        await self._load_plugins()
        plugin = self.cache.plugin(plugin_id)
        if plugin is None:
            raise EntityNotFoundError("Plugin", plugin_id)
        return plugin

    async def get_item_type_fields_and_fieldsets(
        self, item_type: ItemType
    ) -> tuple[list[Field], list[Fieldset]]:
        item_type_id = item_type.id

        async def fetch_fields() -> list[Field]:
            async with self._throttle:
                payloads = await self.reader.list_fields(item_type_id)
            fields = sorted(
                (Field.from_dict(p) for p in payloads),  # type: ignore[arg-type]
                key=lambda f: f.position,
            )
            return self.cache.store_fields(item_type_id, fields)

        async def fetch_fieldsets() -> list[Fieldset]:
            async with self._throttle:
                payloads = await self.reader.list_fieldsets(item_type_id)
            fieldsets = sorted(
                (Fieldset.from_dict(p) for p in payloads),  # type: ignore[arg-type]
                key=lambda fs: fs.position,
            )
            return self.cache.store_fieldsets(item_type_id, fieldsets)

        fields = await self._memoised(
            f"fields:{item_type_id}", lambda: self.cache.fields(item_type_id), fetch_fields
        )
        if item_type.is_block:
            return fields, []

        fieldsets = await self._memoised(
            f"fieldsets:{item_type_id}",
            lambda: self.cache.fieldsets(item_type_id),
            fetch_fieldsets,
        )
        return fields, fieldsets

    async def get_known_plugin_ids(self) -> frozenset[str]:
        if self._known_plugin_ids is None:
            self._known_plugin_ids = frozenset(p.id for p in await self.get_all_plugins())
        return self._known_plugin_ids
