"""Import applier: writes an export document into a destination project.

The applier consumes a conflict report plus the user's resolutions and
performs the writes in dependency order:

1. Validate resolutions (nothing is written if this fails)
2. Plan: walk from the roots through field references. Identical and
   reused item types map to their destination id without a write and their
   references are not followed; skipped entities are left out
3. Create item types, block models first, then referenced before referencing
4. Install plugins (or reuse installed ones)
5. Create fieldsets under their owners
6. Create fields with every id rewritten through the migration mapping;
   slug fields last, since they point at their title field. References
   between members of one cycle are left out at creation and patched in
   once every field of the cycle exists
7. Point presentation relationships (``title_field``...) at the new fields

Sibling fieldsets and fields are written through a bounded pool. There is no
rollback: on failure the destination keeps what was written, and the error
carries the partial mapping.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from schemaport.backends.protocol import EntityPayload, SchemaWriter
from schemaport.constants import (
    BUILTIN_EDITORS,
    DEFAULT_CONCURRENCY,
    PRESENTATION_RELATIONSHIPS,
    READ_ONLY_ITEM_TYPE_ATTRIBUTES,
    STRIPPED_FIELD_ATTRIBUTES,
    default_appearance,
    reference_validator_paths,
)
from schemaport.errors import UpstreamWriteError
from schemaport.graph import assemble_graph, cyclic_item_type_ids, dependency_order
from schemaport.graph.builder import find_linked_plugin_ids
from schemaport.models.entities import Field, Fieldset, ItemType, Plugin, read_path, write_path
from schemaport.schema.conflicts import ConflictReport, Disposition
from schemaport.schema.mapping import MappingKind, MigrationMapping
from schemaport.schema.resolutions import (
    ItemTypeResolution,
    ItemTypeStrategy,
    PluginStrategy,
    Resolutions,
    validate_resolutions,
)

if TYPE_CHECKING:
    from schemaport.config import EngineSettings
    from schemaport.sources.export import ExportSchemaSource
    from schemaport.tasks import CancellationToken, ProgressCallback

logger = logging.getLogger(__name__)


@dataclass
class PlannedItemType:
    """An item type the import will create, with what goes inside it."""

    item_type: ItemType
    fields: list[Field]
    fieldsets: list[Fieldset]
    rename: ItemTypeResolution | None = None

    @property
    def has_presentation_fields(self) -> bool:
        return any(self.item_type.relationship_id(n) for n in PRESENTATION_RELATIONSHIPS)


@dataclass
class ImportPlan:
    """Everything the import will write or reuse.

    Attributes:
        item_types: Item types to create, in creation order.
        plugins: Plugins to install.
        reused_item_types: Export id -> destination id, no write.
        reused_plugins: Export id -> destination id, no write.
        skipped_item_type_ids: Item types left out by resolution.
        skipped_plugin_ids: Plugins left out by resolution.
        deferred_references: Field export id -> item type export ids that are
            patched in after creation (references inside a cycle).
    """

    item_types: list[PlannedItemType] = field(default_factory=list)
    plugins: list[Plugin] = field(default_factory=list)
    reused_item_types: dict[str, str] = field(default_factory=dict)
    reused_plugins: dict[str, str] = field(default_factory=dict)
    skipped_item_type_ids: list[str] = field(default_factory=list)
    skipped_plugin_ids: list[str] = field(default_factory=list)
    deferred_references: dict[str, set[str]] = field(default_factory=dict)

    @property
    def total_writes(self) -> int:
        return (
            len(self.item_types)
            + len(self.plugins)
            + sum(len(p.fieldsets) + len(p.fields) for p in self.item_types)
            + len(self.deferred_references)
            + sum(1 for p in self.item_types if p.has_presentation_fields)
        )


@dataclass
class ImportResult:
    """Outcome of a completed import."""

    mapping: MigrationMapping
    item_types_created: int = 0
    item_types_reused: int = 0
    plugins_created: int = 0
    plugins_reused: int = 0
    fieldsets_created: int = 0
    fields_created: int = 0
    fields_patched: int = 0
    item_types_finalized: int = 0
    skipped_item_type_ids: list[str] = field(default_factory=list)
    skipped_plugin_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "item_types_created": self.item_types_created,
            "item_types_reused": self.item_types_reused,
            "plugins_created": self.plugins_created,
            "plugins_reused": self.plugins_reused,
            "fieldsets_created": self.fieldsets_created,
            "fields_created": self.fields_created,
            "fields_patched": self.fields_patched,
            "item_types_finalized": self.item_types_finalized,
            "skipped_item_type_ids": list(self.skipped_item_type_ids),
            "skipped_plugin_ids": list(self.skipped_plugin_ids),
            "mapping": self.mapping.to_dict(),
        }


# ----------------------------------------------------------------------
# Planning
# ----------------------------------------------------------------------


def _creation_order(planned: list[PlannedItemType]) -> list[PlannedItemType]:
    by_id = {p.item_type.id: p for p in planned}
    graph = assemble_graph(
        [p.item_type for p in planned],
        {p.item_type.id: p.fields for p in planned},
        {p.item_type.id: p.fieldsets for p in planned},
        [],
        frozenset(),
    )
    ordered = [
        by_id[node.entity_id]
        for node in (graph.node(graph_id) for graph_id in dependency_order(graph))
        if node is not None and node.entity_id in by_id
    ]
    # Stable sort keeps dependency order within each group
    return sorted(ordered, key=lambda p: not p.item_type.is_block)


def _deferred_references(planned: list[PlannedItemType]) -> dict[str, set[str]]:
    graph = assemble_graph(
        [p.item_type for p in planned],
        {p.item_type.id: p.fields for p in planned},
        {},
        [],
        frozenset(),
    )
    membership = cyclic_item_type_ids(graph)
    deferred: dict[str, set[str]] = {}
    for p in planned:
        cycle = membership.get(p.item_type.id)
        if cycle is None:
            continue
        for f in p.fields:
            same_cycle = {i for i in f.linked_item_type_ids() if membership.get(i) == cycle}
            if same_cycle:
                deferred[f.id] = same_cycle
    return deferred


def plan_import(
    export_source: ExportSchemaSource,
    report: ConflictReport,
    resolutions: Resolutions,
    root_item_type_ids: Iterable[str] | None = None,
) -> ImportPlan:
    """Decide what to create, reuse and skip.

    Args:
        export_source: Source over the export document.
        report: Conflict report for the document.
        resolutions: The user's choices (already validated).
        root_item_type_ids: Where the walk starts. When None the whole
            document is imported, starting from its root item type.

    Returns:
        ImportPlan in creation order.
    """
    plan = ImportPlan()
    known_plugin_ids = frozenset(p.id for p in export_source.plugins)

    queue: deque[ItemType | Plugin]
    if root_item_type_ids is None:
        root = export_source.root_item_type
        queue = deque([root, *(it for it in export_source.item_types if it.id != root.id)])
        queue.extend(export_source.plugins)
    else:
        queue = deque(export_source.item_type(i) for i in root_item_type_ids)

    visited: set[tuple[str, str]] = set()
    to_create: list[PlannedItemType] = []
    while queue:
        entity = queue.popleft()
        key = (entity.type, entity.id)
        if key in visited:
            continue
        visited.add(key)

        if isinstance(entity, ItemType):
            entry = report.item_types.get(entity.id)
            resolution = resolutions.item_types.get(entity.id)
            strategy = resolution.strategy if resolution is not None else None
            if strategy is ItemTypeStrategy.SKIP:
                plan.skipped_item_type_ids.append(entity.id)
                continue
            if entry is not None and entry.destination_id is not None and (
                strategy is ItemTypeStrategy.REUSE_EXISTING
                or (strategy is None and entry.disposition is Disposition.IDENTICAL)
            ):
                plan.reused_item_types[entity.id] = entry.destination_id
                continue

            fields = export_source.fields_of(entity.id)
            to_create.append(
                PlannedItemType(
                    item_type=entity,
                    fields=fields,
                    fieldsets=export_source.fieldsets_of(entity.id),
                    rename=resolution if strategy is ItemTypeStrategy.RENAME else None,
                )
            )
            for f in fields:
                for linked_id in f.linked_item_type_ids():
                    linked = export_source.cache.item_type(linked_id)
                    if linked is not None:
                        queue.append(linked)
                for plugin_id in find_linked_plugin_ids(f, known_plugin_ids):
                    queue.append(export_source.plugin(plugin_id))
        else:
            plugin_entry = report.plugins.get(entity.id)
            plugin_resolution = resolutions.plugins.get(entity.id)
            plugin_strategy = plugin_resolution.strategy if plugin_resolution else None
            if plugin_strategy is PluginStrategy.SKIP:
                plan.skipped_plugin_ids.append(entity.id)
            elif plugin_entry is not None and plugin_entry.destination_id is not None and (
                plugin_strategy is PluginStrategy.REUSE_EXISTING
                or (plugin_strategy is None and plugin_entry.disposition is Disposition.IDENTICAL)
            ):
                plan.reused_plugins[entity.id] = plugin_entry.destination_id
            else:
                plan.plugins.append(entity)

    plan.item_types = _creation_order(to_create)
    plan.deferred_references = _deferred_references(plan.item_types)
    return plan


# ----------------------------------------------------------------------
# Payloads
# ----------------------------------------------------------------------


def item_type_payload(planned: PlannedItemType) -> EntityPayload:
    """Create payload for an item type; relationships are set when finalising."""
    attributes = {
        key: copy.deepcopy(value)
        for key, value in planned.item_type.attributes.items()
        if key not in READ_ONLY_ITEM_TYPE_ATTRIBUTES
    }
    if planned.rename is not None:
        attributes["name"] = planned.rename.name
        attributes["api_key"] = planned.rename.api_key
    return {"type": "item_type", "attributes": attributes}


def plugin_payload(plugin: Plugin) -> EntityPayload:
    """Install payload: marketplace plugins by package name, private ones by their attributes."""
    if plugin.package_name:
        attributes: dict[str, Any] = {"package_name": plugin.package_name}
    else:
        attributes = {
            key: copy.deepcopy(value)
            for key, value in plugin.attributes.items()
            if key != "parameters"
        }
    return {"type": "plugin", "attributes": attributes}


def map_appearance(field: Field, mapping: MigrationMapping) -> dict[str, Any]:
    """Field appearance with plugin ids translated to the destination.

    A built-in editor is kept as is. A plugin editor is translated, or
    replaced by the field type's default appearance when the plugin was not
    carried over. Addons of plugins that were not carried over are dropped.
    """
    original = field.appearance
    editor = original.get("editor")
    if original and (editor is None or editor in BUILTIN_EDITORS):
        appearance = copy.deepcopy(original)
    else:
        mapped_editor = mapping.get(MappingKind.PLUGIN, editor) if editor else None
        if mapped_editor is not None:
            appearance = copy.deepcopy(original)
            appearance["editor"] = mapped_editor
        else:
            appearance = default_appearance(field.field_type)

    addons: list[dict[str, Any]] = []
    for addon in original.get("addons") or []:
        mapped_addon = mapping.get(MappingKind.PLUGIN, str(addon.get("id")))
        if mapped_addon is not None:
            addons.append(
                {**copy.deepcopy(addon), "id": mapped_addon, "parameters": addon.get("parameters") or {}}
            )
    appearance["addons"] = addons
    return appearance


def field_payload(
    field: Field, mapping: MigrationMapping, deferred: Iterable[str] = ()
) -> EntityPayload:
    """Create payload for a field, every id rewritten through the mapping.

    Args:
        field: Field from the export document.
        mapping: Mapping holding the destination ids written so far.
        deferred: Item type export ids to leave out of the validators for now.
    """
    left_out = set(deferred)
    attributes = {
        key: copy.deepcopy(value)
        for key, value in field.attributes.items()
        if key not in STRIPPED_FIELD_ATTRIBUTES
    }

    validators = attributes.get("validators")
    if isinstance(validators, dict):
        for path in reference_validator_paths(field.field_type):
            linked_ids = read_path(validators, path)
            if linked_ids is not None:
                write_path(
                    validators,
                    path,
                    mapping.rewrite_ids(
                        MappingKind.ITEM_TYPE,
                        [str(i) for i in linked_ids if str(i) not in left_out],
                    ),
                )
        title_field_id = read_path(validators, "slug_title_field.title_field_id")
        if title_field_id is not None:
            mapped_title = mapping.get(MappingKind.FIELD, str(title_field_id))
            if mapped_title is None:
                validators.pop("slug_title_field")
            else:
                write_path(validators, "slug_title_field.title_field_id", mapped_title)

    attributes["appearance"] = map_appearance(field, mapping)

    fieldset_id = field.fieldset_id
    mapped_fieldset = mapping.get(MappingKind.FIELDSET, fieldset_id) if fieldset_id else None
    return {
        "type": "field",
        "attributes": attributes,
        "relationships": {
            "fieldset": {
                "data": {"type": "fieldset", "id": mapped_fieldset} if mapped_fieldset else None
            }
        },
    }


def presentation_payload(item_type: ItemType, mapping: MigrationMapping) -> EntityPayload:
    """Update payload pointing presentation relationships at the destination fields."""
    relationships: dict[str, Any] = {}
    for name in PRESENTATION_RELATIONSHIPS:
        if name not in item_type.relationships:
            continue
        field_id = item_type.relationship_id(name)
        mapped = mapping.get(MappingKind.FIELD, field_id) if field_id else None
        relationships[name] = {"data": {"type": "field", "id": mapped} if mapped else None}
    return {"type": "item_type", "relationships": relationships}


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------


async def _gather_bounded(
    jobs: list[Callable[[], Awaitable[None]]], concurrency: int
) -> None:
    """Run jobs with at most ``concurrency`` in flight; the first failure cancels the rest."""
    semaphore = asyncio.Semaphore(concurrency)

    async def guarded(job: Callable[[], Awaitable[None]]) -> None:
        async with semaphore:
            await job()

    tasks = [asyncio.ensure_future(guarded(job)) for job in jobs]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class _ImportRun:
    """State of one apply_import call."""

    def __init__(
        self,
        plan: ImportPlan,
        writer: SchemaWriter,
        *,
        on_progress: ProgressCallback | None,
        cancel_token: CancellationToken | None,
        concurrency: int,
    ) -> None:
        self.plan = plan
        self.writer = writer
        self.on_progress = on_progress
        self.cancel_token = cancel_token
        self.concurrency = concurrency
        self.mapping = MigrationMapping()
        self.result = ImportResult(
            mapping=self.mapping,
            skipped_item_type_ids=list(plan.skipped_item_type_ids),
            skipped_plugin_ids=list(plan.skipped_plugin_ids),
        )
        self.done = 0
        self.total = plan.total_writes

    def _checkpoint(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled("Import", mapping=self.mapping)

    async def _write(
        self,
        operation: str,
        entity_id: str,
        call: Callable[[], Awaitable[EntityPayload]],
    ) -> EntityPayload:
        self._checkpoint()
        try:
            payload = await call()
        except Exception as e:
            logger.error("%s failed for %s: %s", operation, entity_id, e)
            raise UpstreamWriteError(operation, entity_id, e, self.mapping) from e
        self.done += 1
        if self.on_progress is not None:
            self.on_progress(self.done, self.total)
        return payload

    def reserve(self) -> None:
        for export_id, destination_id in self.plan.reused_item_types.items():
            self.mapping.bind(MappingKind.ITEM_TYPE, export_id, destination_id, reused=True)
            self.result.item_types_reused += 1
        for export_id, destination_id in self.plan.reused_plugins.items():
            self.mapping.bind(MappingKind.PLUGIN, export_id, destination_id, reused=True)
            self.result.plugins_reused += 1
        for planned in self.plan.item_types:
            self.mapping.reserve(MappingKind.ITEM_TYPE, planned.item_type.id)
            for fieldset in planned.fieldsets:
                self.mapping.reserve(MappingKind.FIELDSET, fieldset.id)
            for f in planned.fields:
                self.mapping.reserve(MappingKind.FIELD, f.id)
        for plugin in self.plan.plugins:
            self.mapping.reserve(MappingKind.PLUGIN, plugin.id)

    async def create_item_types(self) -> None:
        for planned in self.plan.item_types:
            export_id = planned.item_type.id
            created = await self._write(
                "Create item type",
                export_id,
                lambda p=planned: self.writer.create_item_type(item_type_payload(p)),
            )
            self.mapping.bind(MappingKind.ITEM_TYPE, export_id, str(created["id"]))
            self.result.item_types_created += 1
            logger.debug("Item type %s -> %s", export_id, created["id"])

    async def install_plugins(self) -> None:
        for plugin in self.plan.plugins:
            created = await self._write(
                "Install plugin",
                plugin.id,
                lambda p=plugin: self.writer.create_plugin(plugin_payload(p)),
            )
            self.mapping.bind(MappingKind.PLUGIN, plugin.id, str(created["id"]))
            self.result.plugins_created += 1
            logger.debug("Plugin %s -> %s", plugin.id, created["id"])

    async def create_fieldsets(self) -> None:
        jobs: list[Callable[[], Awaitable[None]]] = []
        for planned in self.plan.item_types:
            owner_id = self.mapping.get(MappingKind.ITEM_TYPE, planned.item_type.id)
            assert owner_id is not None  # bound by create_item_types
            for fieldset in planned.fieldsets:

                async def job(fieldset: Fieldset = fieldset, owner_id: str = owner_id) -> None:
                    payload: EntityPayload = {
                        "type": "fieldset",
                        "attributes": copy.deepcopy(fieldset.attributes),
                    }
                    created = await self._write(
                        "Create fieldset",
                        fieldset.id,
                        lambda: self.writer.create_fieldset(owner_id, payload),
                    )
                    self.mapping.bind(MappingKind.FIELDSET, fieldset.id, str(created["id"]))
                    self.result.fieldsets_created += 1

                jobs.append(job)
        await _gather_bounded(jobs, self.concurrency)

    def _field_job(self, owner_id: str, f: Field) -> Callable[[], Awaitable[None]]:
        async def job() -> None:
            payload = field_payload(f, self.mapping, self.plan.deferred_references.get(f.id, ()))
            created = await self._write(
                "Create field", f.id, lambda: self.writer.create_field(owner_id, payload)
            )
            self.mapping.bind(MappingKind.FIELD, f.id, str(created["id"]))
            self.result.fields_created += 1

        return job

    async def create_fields(self) -> None:
        regular: list[Callable[[], Awaitable[None]]] = []
        slugs: list[Callable[[], Awaitable[None]]] = []
        for planned in self.plan.item_types:
            owner_id = self.mapping.get(MappingKind.ITEM_TYPE, planned.item_type.id)
            assert owner_id is not None  # bound by create_item_types
            for f in planned.fields:
                target = slugs if f.field_type == "slug" else regular
                target.append(self._field_job(owner_id, f))
        await _gather_bounded(regular, self.concurrency)
        await _gather_bounded(slugs, self.concurrency)

    async def patch_cyclic_fields(self) -> None:
        jobs: list[Callable[[], Awaitable[None]]] = []
        for planned in self.plan.item_types:
            for f in planned.fields:
                if f.id not in self.plan.deferred_references:
                    continue

                async def job(f: Field = f) -> None:
                    destination_id = self.mapping.get(MappingKind.FIELD, f.id)
                    assert destination_id is not None  # bound by create_fields
                    validators = field_payload(f, self.mapping)["attributes"].get("validators")
                    await self._write(
                        "Update field",
                        f.id,
                        lambda: self.writer.update_field(
                            destination_id,
                            {"type": "field", "attributes": {"validators": validators}},
                        ),
                    )
                    self.result.fields_patched += 1

                jobs.append(job)
        await _gather_bounded(jobs, self.concurrency)

    async def finalize_item_types(self) -> None:
        jobs: list[Callable[[], Awaitable[None]]] = []
        for planned in self.plan.item_types:
            if not planned.has_presentation_fields:
                continue

            async def job(planned: PlannedItemType = planned) -> None:
                destination_id = self.mapping.get(MappingKind.ITEM_TYPE, planned.item_type.id)
                assert destination_id is not None  # bound by create_item_types
                payload = presentation_payload(planned.item_type, self.mapping)
                await self._write(
                    "Update item type",
                    planned.item_type.id,
                    lambda: self.writer.update_item_type(destination_id, payload),
                )
                self.result.item_types_finalized += 1

            jobs.append(job)
        await _gather_bounded(jobs, self.concurrency)


def _settings_concurrency(settings: EngineSettings | None) -> int:
    return settings.concurrency if settings is not None else DEFAULT_CONCURRENCY


async def apply_import(
    export_source: ExportSchemaSource,
    report: ConflictReport,
    resolutions: Resolutions,
    writer: SchemaWriter,
    *,
    root_item_type_ids: Iterable[str] | None = None,
    on_progress: ProgressCallback | None = None,
    cancel_token: CancellationToken | None = None,
    concurrency: int | None = None,
    settings: EngineSettings | None = None,
) -> ImportResult:
    """Write an export document into the destination behind ``writer``.

    Args:
        export_source: Source over the export document.
        report: Conflict report built against the destination.
        resolutions: Resolutions for (at least) every colliding entry.
        writer: Schema-writing collaborator for the destination.
        root_item_type_ids: Item types to import along with what they
            reference. The whole document when None.
        on_progress: Called with (done, total) after each write.
        cancel_token: Checked before each write.
        concurrency: Max concurrent sibling writes. Overrides
            ``settings.concurrency``; 6 when neither is given.
        settings: Engine settings, usually from ``load_settings``.

    Returns:
        ImportResult with the complete migration mapping.

    Raises:
        ConflictUnresolvedError: If a colliding entry has no resolution.
        InvalidResolutionError: If a resolution cannot be applied.
        UpstreamWriteError: If the writer rejects a call; ``mapping`` holds
            what was written before.
        OperationCancelledError: If cancellation was requested; ``mapping``
            holds what was written before.
    """
    validate_resolutions(
        report, resolutions, report.destination_api_keys, report.destination_names
    )
    plan = plan_import(export_source, report, resolutions, root_item_type_ids)
    logger.info(
        "Importing %d item types and %d plugins (%d reused, %d skipped, %d writes)",
        len(plan.item_types),
        len(plan.plugins),
        len(plan.reused_item_types) + len(plan.reused_plugins),
        len(plan.skipped_item_type_ids) + len(plan.skipped_plugin_ids),
        plan.total_writes,
    )

    run = _ImportRun(
        plan,
        writer,
        on_progress=on_progress,
        cancel_token=cancel_token,
        concurrency=max(1, concurrency or _settings_concurrency(settings)),
    )
    run.reserve()

    logger.info("Creating item types")
    await run.create_item_types()
    logger.info("Installing plugins")
    await run.install_plugins()
    logger.info("Creating fieldsets")
    await run.create_fieldsets()
    logger.info("Creating fields")
    await run.create_fields()
    if plan.deferred_references:
        logger.info("Patching %d cyclic references", len(plan.deferred_references))
        await run.patch_cyclic_fields()
    logger.info("Finalizing item types")
    await run.finalize_item_types()

    logger.info(
        "Import done: %d item types, %d plugins, %d fieldsets, %d fields created",
        run.result.item_types_created,
        run.result.plugins_created,
        run.result.fieldsets_created,
        run.result.fields_created,
    )
    return run.result
