"""Unit tests for import planning and payload building.

End-to-end writes against the in-memory backend live in the integration
tests; these cover the pure pieces.
"""

from __future__ import annotations

import pytest

from schemaport.backends.memory import InMemorySchemaBackend
from schemaport.models.entities import Entity
from schemaport.schema.apply import (
    ImportPlan,
    PlannedItemType,
    field_payload,
    item_type_payload,
    map_appearance,
    plan_import,
    plugin_payload,
    presentation_payload,
)
from schemaport.schema.conflicts import ConflictReport, build_conflicts
from schemaport.schema.mapping import MappingKind, MigrationMapping
from schemaport.schema.resolutions import ItemTypeResolution, PluginResolution, Resolutions
from schemaport.sources.export import ExportSchemaSource
from schemaport.sources.project import ProjectSchemaSource
from tests.factories import (
    blog_entities,
    cyclic_entities,
    make_document,
    make_field,
    make_item_type,
    make_plugin,
    reid_entities,
    run,
)


def report_against(export_source: ExportSchemaSource, destination: list[Entity]) -> ConflictReport:
    project = ProjectSchemaSource(InMemorySchemaBackend(destination))
    return run(build_conflicts(export_source, project))


def mapping_with(**bindings: dict[str, str]) -> MigrationMapping:
    """Mapping with ``item_types={...}``, ``plugins={...}``... already bound."""
    mapping = MigrationMapping()
    kinds = {
        "item_types": MappingKind.ITEM_TYPE,
        "plugins": MappingKind.PLUGIN,
        "fieldsets": MappingKind.FIELDSET,
        "fields": MappingKind.FIELD,
    }
    for name, pairs in bindings.items():
        for export_id, destination_id in pairs.items():
            mapping.bind(kinds[name], export_id, destination_id)
    return mapping


# =============================================================================
# Payloads
# =============================================================================


class TestItemTypePayload:
    """Tests for item_type_payload()."""

    @pytest.mark.unit
    def test_copies_attributes_without_read_only(self) -> None:
        item_type = make_item_type("it-1", "page", "Page")
        item_type.attributes["has_singleton_item"] = True

        payload = item_type_payload(PlannedItemType(item_type, [], []))

        assert payload["type"] == "item_type"
        assert "has_singleton_item" not in payload["attributes"]
        assert payload["attributes"]["api_key"] == "page"
        assert "relationships" not in payload

    @pytest.mark.unit
    def test_rename(self) -> None:
        planned = PlannedItemType(
            make_item_type("it-1", "page", "Page"),
            [],
            [],
            rename=ItemTypeResolution.rename("Landing page", "landing_page"),
        )

        attributes = item_type_payload(planned)["attributes"]

        assert (attributes["name"], attributes["api_key"]) == ("Landing page", "landing_page")


class TestPluginPayload:
    """Tests for plugin_payload()."""

    @pytest.mark.unit
    def test_marketplace_plugin_by_package_name(self) -> None:
        plugin = make_plugin("p-1", "Stars", package_name="star-rating-editor")

        assert plugin_payload(plugin) == {
            "type": "plugin",
            "attributes": {"package_name": "star-rating-editor"},
        }

    @pytest.mark.unit
    def test_private_plugin_without_parameters(self) -> None:
        plugin = make_plugin("p-1", "Mine", url="https://plugins.example.com/mine")
        plugin.attributes["parameters"] = {"token": "secret"}

        attributes = plugin_payload(plugin)["attributes"]

        assert attributes["url"] == "https://plugins.example.com/mine"
        assert "parameters" not in attributes


class TestMapAppearance:
    """Tests for map_appearance()."""

    @pytest.mark.unit
    def test_mapped_plugin_editor_keeps_parameters(self) -> None:
        field = make_field(
            "f-1", "it-1", "rating", "integer", appearance={"editor": "p-1", "parameters": {"max": 5}}
        )

        appearance = map_appearance(field, mapping_with(plugins={"p-1": "new-9"}))

        assert appearance == {"editor": "new-9", "parameters": {"max": 5}, "addons": []}

    @pytest.mark.unit
    def test_unmapped_plugin_editor_falls_back(self) -> None:
        field = make_field("f-1", "it-1", "rating", "integer", appearance={"editor": "p-1"})

        appearance = map_appearance(field, MigrationMapping())

        assert appearance["editor"] == "integer"

    @pytest.mark.unit
    def test_addons_translated_or_dropped(self) -> None:
        field = make_field(
            "f-1",
            "it-1",
            "title",
            appearance={
                "editor": "single_line",
                "addons": [{"id": "p-1", "parameters": {"x": 1}}, {"id": "p-2"}],
            },
        )

        appearance = map_appearance(field, mapping_with(plugins={"p-1": "new-1"}))

        assert appearance["addons"] == [{"id": "new-1", "parameters": {"x": 1}}]


class TestFieldPayload:
    """Tests for field_payload()."""

    @pytest.mark.unit
    def test_reference_ids_rewritten(self) -> None:
        field = make_field(
            "f-1",
            "it-1",
            "related",
            "links",
            validators={"items_item_type": {"item_types": ["it-2", "it-3"]}},
            fieldset_id="fs-1",
        )
        mapping = mapping_with(item_types={"it-2": "new-2"}, fieldsets={"fs-1": "new-fs"})

        payload = field_payload(field, mapping)

        assert payload["attributes"]["validators"]["items_item_type"]["item_types"] == ["new-2"]
        assert payload["relationships"]["fieldset"]["data"] == {"type": "fieldset", "id": "new-fs"}

    @pytest.mark.unit
    def test_deferred_ids_left_out(self) -> None:
        field = make_field(
            "f-1",
            "it-1",
            "related",
            "links",
            validators={"items_item_type": {"item_types": ["it-2", "it-3"]}},
        )
        mapping = mapping_with(item_types={"it-2": "new-2", "it-3": "new-3"})

        payload = field_payload(field, mapping, deferred={"it-3"})

        assert payload["attributes"]["validators"]["items_item_type"]["item_types"] == ["new-2"]

    @pytest.mark.unit
    def test_slug_title_field_mapped_or_dropped(self) -> None:
        field = make_field(
            "f-slug",
            "it-1",
            "slug",
            "slug",
            validators={"slug_title_field": {"title_field_id": "f-title"}, "unique": {}},
        )

        mapped = field_payload(field, mapping_with(fields={"f-title": "new-f"}))
        unmapped = field_payload(field, MigrationMapping())

        assert mapped["attributes"]["validators"]["slug_title_field"] == {"title_field_id": "new-f"}
        assert unmapped["attributes"]["validators"] == {"unique": {}}

    @pytest.mark.unit
    def test_no_fieldset(self) -> None:
        payload = field_payload(make_field("f-1", "it-1", "title"), MigrationMapping())

        assert payload["relationships"]["fieldset"]["data"] is None

    @pytest.mark.unit
    def test_export_field_untouched(self) -> None:
        field = make_field(
            "f-1", "it-1", "author", "link", validators={"item_item_type": {"item_types": ["it-2"]}}
        )

        field_payload(field, mapping_with(item_types={"it-2": "new-2"}))

        assert field.validators["item_item_type"]["item_types"] == ["it-2"]


class TestPresentationPayload:
    """Tests for presentation_payload()."""

    @pytest.mark.unit
    def test_points_at_destination_fields(self) -> None:
        item_type = make_item_type("it-1", "page", title_field_id="f-title")
        item_type.relationships["image_preview_field"] = {"data": None}

        payload = presentation_payload(item_type, mapping_with(fields={"f-title": "new-f"}))

        assert payload["relationships"] == {
            "title_field": {"data": {"type": "field", "id": "new-f"}},
            "image_preview_field": {"data": None},
        }

    @pytest.mark.unit
    def test_unmapped_field_clears_relationship(self) -> None:
        item_type = make_item_type("it-1", "page", title_field_id="f-title")

        payload = presentation_payload(item_type, MigrationMapping())

        assert payload["relationships"] == {"title_field": {"data": None}}


# =============================================================================
# Planning
# =============================================================================


class TestPlanImport:
    """Tests for plan_import()."""

    @pytest.mark.unit
    def test_empty_destination_creates_everything(self, blog_source: ExportSchemaSource) -> None:
        report = report_against(blog_source, [])

        plan = plan_import(blog_source, report, Resolutions())

        assert [p.item_type.id for p in plan.item_types] == ["it-cta", "it-author", "it-post"]
        assert [p.id for p in plan.plugins] == ["p-stars"]
        assert plan.reused_item_types == {}
        assert plan.deferred_references == {}

    @pytest.mark.unit
    def test_total_writes(self, blog_source: ExportSchemaSource) -> None:
        plan = plan_import(blog_source, report_against(blog_source, []), Resolutions())

        # 3 item types, 1 plugin, 1 fieldset, 7 fields, 1 presentation update
        assert plan.total_writes == 13

    @pytest.mark.unit
    def test_identical_entities_reused(self, blog_source: ExportSchemaSource) -> None:
        report = report_against(blog_source, reid_entities(blog_entities()))

        plan = plan_import(blog_source, report, Resolutions())

        assert plan.item_types == []
        assert plan.plugins == []
        assert plan.reused_item_types == {
            "it-post": "dst-it-post",
            "it-author": "dst-it-author",
            "it-cta": "dst-it-cta",
        }
        assert plan.reused_plugins == {"p-stars": "dst-p-stars"}
        assert plan.total_writes == 0

    @pytest.mark.unit
    def test_roots_limit_the_walk(self, blog_source: ExportSchemaSource) -> None:
        plan = plan_import(
            blog_source, report_against(blog_source, []), Resolutions(), ["it-author"]
        )

        assert [p.item_type.id for p in plan.item_types] == ["it-author"]
        assert plan.plugins == []

    @pytest.mark.unit
    def test_reused_item_type_references_not_followed(
        self, blog_source: ExportSchemaSource
    ) -> None:
        destination = reid_entities(blog_entities())
        report = report_against(blog_source, destination)

        plan = plan_import(blog_source, report, Resolutions(), ["it-post"])

        assert plan.reused_item_types == {"it-post": "dst-it-post"}
        assert plan.reused_plugins == {}

    @pytest.mark.unit
    def test_skip_resolutions(self, blog_source: ExportSchemaSource) -> None:
        resolutions = Resolutions(
            item_types={"it-author": ItemTypeResolution.skip()},
            plugins={"p-stars": PluginResolution.skip()},
        )

        plan = plan_import(blog_source, report_against(blog_source, []), resolutions)

        assert plan.skipped_item_type_ids == ["it-author"]
        assert plan.skipped_plugin_ids == ["p-stars"]
        assert [p.item_type.id for p in plan.item_types] == ["it-cta", "it-post"]

    @pytest.mark.unit
    def test_rename_planned_as_new_item_type(self, blog_source: ExportSchemaSource) -> None:
        report = report_against(blog_source, reid_entities(blog_entities()))
        resolutions = Resolutions(
            item_types={"it-author": ItemTypeResolution.rename("Writer", "writer")}
        )

        plan = plan_import(blog_source, report, resolutions, ["it-author"])

        assert len(plan.item_types) == 1
        assert plan.item_types[0].rename == ItemTypeResolution.rename("Writer", "writer")

    @pytest.mark.unit
    def test_cycle_references_deferred(self) -> None:
        source = ExportSchemaSource(make_document(cyclic_entities(), root_item_type_id="it-a"))

        plan = plan_import(source, report_against(source, []), Resolutions())

        assert plan.deferred_references == {"f-a-to-b": {"it-b"}, "f-b-to-a": {"it-a"}}
        # 2 item types, 2 fieldsets, 2 fields, 2 patches
        assert plan.total_writes == 8

    @pytest.mark.unit
    def test_import_plan_defaults(self) -> None:
        assert ImportPlan().total_writes == 0
