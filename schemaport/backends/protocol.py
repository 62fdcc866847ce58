"""Reader and writer protocols for the content-management API.

The engine never talks HTTP itself. A project schema is read through a
``SchemaReader`` and written through a ``SchemaWriter``; both speak the
API's raw JSON:API payloads. A real API client implements them outside this
package and can be registered as a backend plugin:

    # In the plugin's pyproject.toml:
    [project.entry-points."schemaport.backends"]
    cma = "schemaport_cma:CmaBackend"

Concurrency:
    Backends are called from a single asyncio event loop. The import applier
    may have several calls in flight at once (bounded, see
    ``EngineSettings.concurrency``), always on disjoint entities. Retrying
    transient failures is the backend's job, not the engine's.
"""

from __future__ import annotations

from typing import Any, Protocol, TypedDict, runtime_checkable


class EntityPayload(TypedDict, total=False):
    """Raw JSON:API resource object exchanged with the content API.

    Attributes:
        id: Entity id. Optional on create; the backend assigns one if absent.
        type: Resource type tag ("item_type", "field", "fieldset", "plugin").
        attributes: Resource attributes.
        relationships: Resource relationships.
        meta: Read-only metadata.
    """

    id: str
    type: str
    attributes: dict[str, Any]
    relationships: dict[str, Any]
    meta: dict[str, Any]


@runtime_checkable
class SchemaReader(Protocol):
    """Read side of the content API (``itemTypes.list``, ``fields.list``...)."""

    async def list_item_types(self) -> list[EntityPayload]:
        """List every item type (models and block models) in the project."""
        ...

    async def list_plugins(self) -> list[EntityPayload]:
        """List every installed plugin."""
        ...

    async def list_fields(self, item_type_id: str) -> list[EntityPayload]:
        """List the fields of one item type.

        Raises:
            KeyError: If the item type does not exist.
        """
        ...

    async def list_fieldsets(self, item_type_id: str) -> list[EntityPayload]:
        """List the fieldsets of one item type.

        Raises:
            KeyError: If the item type does not exist.
        """
        ...


@runtime_checkable
class SchemaWriter(Protocol):
    """Write side of the content API.

    Every method returns the payload of the created or updated entity as the
    destination stored it (with its destination id). Any exception raised is
    surfaced by the import applier as ``UpstreamWriteError``.
    """

    async def create_item_type(self, data: EntityPayload) -> EntityPayload:
        """Create an item type."""
        ...

    async def update_item_type(self, item_type_id: str, data: EntityPayload) -> EntityPayload:
        """Update an item type's attributes and/or relationships."""
        ...

    async def create_plugin(self, data: EntityPayload) -> EntityPayload:
        """Install a plugin."""
        ...

    async def create_fieldset(self, item_type_id: str, data: EntityPayload) -> EntityPayload:
        """Create a fieldset under an existing item type."""
        ...

    async def create_field(self, item_type_id: str, data: EntityPayload) -> EntityPayload:
        """Create a field under an existing item type."""
        ...

    async def update_field(self, field_id: str, data: EntityPayload) -> EntityPayload:
        """Update a field's attributes."""
        ...
