"""Conflict detection between an export document and a destination project.

Every item type and plugin of the export gets exactly one disposition:

- new: nothing in the destination matches it
- identical: a match exists and the comparison policy finds no difference;
  the destination entity is reused without any write
- colliding: a match exists but differs; the caller must pick a resolution
  (see :mod:`schemaport.schema.resolutions`)

Matching:
- Item types match on ``api_key``, then on ``name`` (both are unique in a project)
- Plugins match on ``package_name``, then ``url``, then ``name``

Comparison policy for two matched item types:
- ``modular_block`` and ``singleton`` must agree
- the sets of field api keys must agree
- each common field must agree on every attribute except ``api_key`` and the
  ignored ones (``label``, ``hint``, ``position``, ``appearance`` and
  ``default_value`` by default, see ``EngineSettings``); the misspelt
  ``appeareance`` key is dropped on export and never compared
- validator ids that point at item types are compared by the api key of the
  item type they point at, since ids differ between projects; the slug
  title field is compared by its field's api key
- fieldsets are presentation only and never compared

Plugins compare ``package_version``.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from schemaport.config import EngineSettings
from schemaport.constants import STRIPPED_FIELD_ATTRIBUTES, reference_validator_paths
from schemaport.errors import EntityNotFoundError
from schemaport.graph import (
    NodeKind,
    build_graph,
    dependency_order,
    find_outbound_edges,
    node_id,
)
from schemaport.models.entities import Field, ItemType, Plugin, read_path, write_path

if TYPE_CHECKING:
    from schemaport.sources.export import ExportSchemaSource
    from schemaport.sources.protocol import SchemaSource
    from schemaport.tasks import CancellationToken, ProgressCallback

logger = logging.getLogger(__name__)


class Disposition(str, Enum):
    NEW = "new"
    IDENTICAL = "identical"
    COLLIDING = "colliding"


# Message templates for difference types
_DIFFERENCE_MESSAGES: dict[str, str] = {
    "api_key_changed": "API key differs: {destination} -> {export}",
    "modular_block_changed": "Block model flag differs: {destination} -> {export}",
    "singleton_changed": "Singleton flag differs: {destination} -> {export}",
    "field_added": "Field '{element}' only exists in the export",
    "field_removed": "Field '{element}' only exists in the destination",
    "field_attribute_changed": "Field '{element}' differs: {destination} -> {export}",
    "package_version_changed": "Plugin version differs: {destination} -> {export}",
}


@dataclass
class Difference:
    """One observed difference between an export entity and its match."""

    change_type: str
    """Type of difference: field_added, field_attribute_changed, etc."""

    element: str
    """Affected element (field api key, ``field.attribute``, or entity key)."""

    destination_value: str | None = None
    """Value in the destination project (if applicable)."""

    export_value: str | None = None
    """Value in the export document (if applicable)."""

    def __str__(self) -> str:
        """Human-readable description of the difference."""
        template = _DIFFERENCE_MESSAGES.get(self.change_type)
        if template:
            return template.format(
                element=self.element,
                destination=self.destination_value,
                export=self.export_value,
            )
        return (
            f"{self.change_type}: {self.element} "
            f"({self.destination_value} -> {self.export_value})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "change_type": self.change_type,
            "element": self.element,
            "destination_value": self.destination_value,
            "export_value": self.export_value,
        }


@dataclass
class ConflictEntry:
    """Disposition of one export entity.

    Attributes:
        kind: "item_type" or "plugin".
        export_id: Id in the export document.
        name: Entity name.
        api_key: Item type api key (None for plugins).
        disposition: new, identical or colliding.
        destination_id: Id of the matching destination entity, if any.
        reason: Human-readable explanation.
        differences: What the comparison found (colliding only).
        dependencies: Export id -> disposition of every entity this one references.
    """

    kind: str
    export_id: str
    name: str
    disposition: Disposition
    api_key: str | None = None
    destination_id: str | None = None
    reason: str = ""
    differences: list[Difference] = field(default_factory=list)
    dependencies: dict[str, Disposition] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.api_key or self.name

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "kind": self.kind,
            "export_id": self.export_id,
            "name": self.name,
            "api_key": self.api_key,
            "disposition": self.disposition.value,
            "destination_id": self.destination_id,
            "reason": self.reason,
            "differences": [d.to_dict() for d in self.differences],
            "dependencies": {k: v.value for k, v in self.dependencies.items()},
        }


@dataclass
class ConflictReport:
    """Dispositions of every item type and plugin of an export document.

    Attributes:
        item_types: Export item type id -> entry.
        plugins: Export plugin id -> entry.
        destination_api_keys: Item type api keys present in the destination
            when the report was built (used to validate renames).
        destination_names: Item type names present in the destination.
    """

    item_types: dict[str, ConflictEntry] = field(default_factory=dict)
    plugins: dict[str, ConflictEntry] = field(default_factory=dict)
    destination_api_keys: frozenset[str] = frozenset()
    destination_names: frozenset[str] = frozenset()

    def entries(self) -> list[ConflictEntry]:
        return [*self.item_types.values(), *self.plugins.values()]

    def colliding(self) -> list[ConflictEntry]:
        return [e for e in self.entries() if e.disposition is Disposition.COLLIDING]

    @property
    def has_collisions(self) -> bool:
        return any(e.disposition is Disposition.COLLIDING for e in self.entries())

    def counts(self) -> dict[str, int]:
        """Number of entries per disposition value."""
        result = {d.value: 0 for d in Disposition}
        for entry in self.entries():
            result[entry.disposition.value] += 1
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "item_types": {k: v.to_dict() for k, v in self.item_types.items()},
            "plugins": {k: v.to_dict() for k, v in self.plugins.items()},
            "counts": self.counts(),
        }


def _render(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def _api_key_resolver(source: SchemaSource) -> Callable[[str], Awaitable[str]]:
    """Translate item type ids to api keys; unknown ids keep a ``#id`` marker."""
    resolved: dict[str, str] = {}

    async def resolve(item_type_id: str) -> str:
        if item_type_id not in resolved:
            try:
                item_type = await source.get_item_type_by_id(item_type_id)
            except EntityNotFoundError:
                logger.debug("Validator references unknown item type %s", item_type_id)
                resolved[item_type_id] = f"#{item_type_id}"
            else:
                resolved[item_type_id] = item_type.api_key
        return resolved[item_type_id]

    return resolve


async def _comparable_fields(
    fields: list[Field],
    resolve_api_key: Callable[[str], Awaitable[str]],
    ignored: frozenset[str],
) -> dict[str, dict[str, Any]]:
    """Field api key -> attributes that take part in the comparison, ids normalised."""
    by_id = {f.id: f for f in fields}
    result: dict[str, dict[str, Any]] = {}
    for f in fields:
        attributes = {
            key: copy.deepcopy(value)
            for key, value in f.attributes.items()
            if key not in ignored
            and key not in STRIPPED_FIELD_ATTRIBUTES
            and key != "api_key"
        }
        validators = attributes.get("validators")
        if isinstance(validators, dict):
            for path in reference_validator_paths(f.field_type):
                ids = read_path(validators, path)
                if ids is not None:
                    write_path(validators, path, sorted([await resolve_api_key(str(i)) for i in ids]))
            title_field_id = read_path(validators, "slug_title_field.title_field_id")
            if title_field_id is not None:
                title_field = by_id.get(str(title_field_id))
                write_path(
                    validators,
                    "slug_title_field.title_field_id",
                    title_field.api_key if title_field else f"#{title_field_id}",
                )
        result[f.api_key] = attributes
    return result


async def compare_item_types(
    export_item_type: ItemType,
    export_source: SchemaSource,
    destination_item_type: ItemType,
    project_source: SchemaSource,
    ignored_field_attributes: frozenset[str],
) -> list[Difference]:
    """Apply the comparison policy to two matched item types.

    Returns:
        List of differences. Empty list means identical.
    """
    differences: list[Difference] = []

    if export_item_type.api_key != destination_item_type.api_key:
        differences.append(
            Difference(
                "api_key_changed",
                "api_key",
                destination_item_type.api_key,
                export_item_type.api_key,
            )
        )
    if export_item_type.is_block != destination_item_type.is_block:
        differences.append(
            Difference(
                "modular_block_changed",
                "modular_block",
                str(destination_item_type.is_block),
                str(export_item_type.is_block),
            )
        )
    if export_item_type.is_singleton != destination_item_type.is_singleton:
        differences.append(
            Difference(
                "singleton_changed",
                "singleton",
                str(destination_item_type.is_singleton),
                str(export_item_type.is_singleton),
            )
        )

    export_fields, _ = await export_source.get_item_type_fields_and_fieldsets(export_item_type)
    destination_fields, _ = await project_source.get_item_type_fields_and_fieldsets(
        destination_item_type
    )
    exported = await _comparable_fields(
        export_fields, _api_key_resolver(export_source), ignored_field_attributes
    )
    existing = await _comparable_fields(
        destination_fields, _api_key_resolver(project_source), ignored_field_attributes
    )

    for api_key in exported:
        if api_key not in existing:
            differences.append(Difference("field_added", api_key))
    for api_key in existing:
        if api_key not in exported:
            differences.append(Difference("field_removed", api_key))

    for api_key, export_attributes in exported.items():
        destination_attributes = existing.get(api_key)
        if destination_attributes is None:
            continue
        for attribute in sorted(set(export_attributes) | set(destination_attributes)):
            export_value = export_attributes.get(attribute)
            destination_value = destination_attributes.get(attribute)
            if export_value != destination_value:
                differences.append(
                    Difference(
                        "field_attribute_changed",
                        f"{api_key}.{attribute}",
                        _render(destination_value),
                        _render(export_value),
                    )
                )

    return differences


def compare_plugins(export_plugin: Plugin, destination_plugin: Plugin) -> list[Difference]:
    """Apply the comparison policy to two matched plugins."""
    if export_plugin.package_version != destination_plugin.package_version:
        return [
            Difference(
                "package_version_changed",
                "package_version",
                destination_plugin.package_version,
                export_plugin.package_version,
            )
        ]
    return []


def _match_plugin(plugin: Plugin, destination_plugins: list[Plugin]) -> Plugin | None:
    for attribute in ("package_name", "url", "name"):
        value = getattr(plugin, attribute)
        if not value:
            continue
        for candidate in destination_plugins:
            if getattr(candidate, attribute) == value:
                return candidate
    return None


async def _classify_item_type(
    item_type: ItemType,
    export_source: SchemaSource,
    project_source: SchemaSource,
    by_api_key: dict[str, ItemType],
    by_name: dict[str, ItemType],
    ignored: frozenset[str],
) -> ConflictEntry:
    entry = ConflictEntry(
        kind="item_type",
        export_id=item_type.id,
        name=item_type.name,
        api_key=item_type.api_key,
        disposition=Disposition.NEW,
    )
    match = by_api_key.get(item_type.api_key) or by_name.get(item_type.name)
    if match is None:
        entry.reason = (
            f"No item type with API key '{item_type.api_key}' or name "
            f"'{item_type.name}' in the destination"
        )
        return entry

    entry.destination_id = match.id
    entry.differences = await compare_item_types(
        item_type, export_source, match, project_source, ignored
    )
    if entry.differences:
        entry.disposition = Disposition.COLLIDING
        entry.reason = (
            f"Item type '{match.api_key}' exists in the destination with "
            f"{len(entry.differences)} difference(s)"
        )
    else:
        entry.disposition = Disposition.IDENTICAL
        entry.reason = f"Matches destination item type '{match.api_key}'"
    return entry


def _classify_plugin(plugin: Plugin, destination_plugins: list[Plugin]) -> ConflictEntry:
    entry = ConflictEntry(
        kind="plugin", export_id=plugin.id, name=plugin.name, disposition=Disposition.NEW
    )
    match = _match_plugin(plugin, destination_plugins)
    if match is None:
        entry.reason = f"Plugin '{plugin.name}' is not installed in the destination"
        return entry

    entry.destination_id = match.id
    entry.differences = compare_plugins(plugin, match)
    if entry.differences:
        entry.disposition = Disposition.COLLIDING
        entry.reason = f"Plugin '{match.name}' is installed with a different version"
    else:
        entry.disposition = Disposition.IDENTICAL
        entry.reason = f"Matches installed plugin '{match.name}'"
    return entry


async def build_conflicts(
    export_source: ExportSchemaSource,
    project_source: SchemaSource,
    *,
    on_progress: ProgressCallback | None = None,
    cancel_token: CancellationToken | None = None,
    settings: EngineSettings | None = None,
) -> ConflictReport:
    """Classify every item type and plugin of an export against a destination.

    Entities are processed in dependency order (referenced entities first).
    Before each entity the coroutine yields to the event loop and checks the
    cancellation token.

    Args:
        export_source: Source over the export document.
        project_source: Source over the destination project.
        on_progress: Called with (done, total) after each entity.
        cancel_token: Checked before each entity.
        settings: Engine settings (``ignored_field_attributes``).

    Returns:
        ConflictReport with one entry per export item type and plugin.

    Raises:
        OperationCancelledError: If cancellation was requested.
    """
    settings = settings or EngineSettings()
    ignored = frozenset(settings.ignored_field_attributes)

    destination_item_types = await project_source.get_all_item_types()
    destination_plugins = await project_source.get_all_plugins()
    by_api_key = {it.api_key: it for it in destination_item_types}
    by_name = {it.name: it for it in destination_item_types}

    graph = await build_graph(export_source)
    ordered: list[ItemType | Plugin] = []
    for graph_id in dependency_order(graph):
        node = graph.node(graph_id)
        if node is not None:
            ordered.append(node.entity)
    seen = {(e.type, e.id) for e in ordered}
    ordered.extend(
        e for e in [*export_source.item_types, *export_source.plugins] if (e.type, e.id) not in seen
    )

    report = ConflictReport(
        destination_api_keys=frozenset(by_api_key),
        destination_names=frozenset(by_name),
    )
    total = len(ordered)
    logger.info("Checking %d entities for conflicts", total)

    for done, entity in enumerate(ordered, start=1):
        await asyncio.sleep(0)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled("Conflict check")

        if isinstance(entity, ItemType):
            entry = await _classify_item_type(
                entity, export_source, project_source, by_api_key, by_name, ignored
            )
            report.item_types[entity.id] = entry
        else:
            entry = _classify_plugin(entity, destination_plugins)
            report.plugins[entity.id] = entry
        logger.debug("%s %s: %s", entry.kind, entry.label, entry.disposition.value)

        if on_progress is not None:
            on_progress(done, total)

    for entry in report.item_types.values():
        for edge in find_outbound_edges(graph, node_id(NodeKind.ITEM_TYPE, entry.export_id)):
            target = graph.node(edge.target)
            if target is None:
                continue
            lookup = report.item_types if target.kind is NodeKind.ITEM_TYPE else report.plugins
            dependency = lookup.get(target.entity_id)
            if dependency is not None:
                entry.dependencies[target.entity_id] = dependency.disposition

    counts = report.counts()
    logger.info(
        "Conflict check done: %d new, %d identical, %d colliding",
        counts["new"],
        counts["identical"],
        counts["colliding"],
    )
    return report
