"""Unit tests for the export document envelope and version normalisation."""

from __future__ import annotations

import pytest

from schemaport.errors import InvalidExportDocumentError
from schemaport.models.document import (
    ExportDocument,
    infer_root_item_type_id,
    normalize_export_document,
)
from tests.factories import (
    blog_entities,
    cyclic_entities,
    make_document,
    make_item_type,
    make_link_field,
)


class TestExportDocument:
    """Tests for ExportDocument construction and serialization."""

    @pytest.mark.unit
    def test_unsupported_version(self) -> None:
        with pytest.raises(InvalidExportDocumentError, match="unsupported version"):
            ExportDocument(version="3")

    @pytest.mark.unit
    def test_round_trip(self) -> None:
        document = make_document(blog_entities(), root_item_type_id="it-post")

        restored = ExportDocument.from_dict(document.to_dict())

        assert restored == document
        assert document.to_dict()["rootItemTypeId"] == "it-post"

    @pytest.mark.unit
    def test_version_one_has_no_root_key(self) -> None:
        assert "rootItemTypeId" not in make_document(blog_entities()).to_dict()

    @pytest.mark.unit
    def test_typed_views(self) -> None:
        document = make_document(blog_entities(), root_item_type_id="it-post")

        assert [it.id for it in document.item_types] == ["it-post", "it-author", "it-cta"]
        assert len(document.fields) == 7

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ([], "top-level value must be an object"),
            ({"version": "2"}, "'entities' must be a list"),
            ({"version": "2", "entities": ["x"]}, "entity #0 is not an object"),
            ({"version": "2", "entities": [{"type": "site", "id": "1"}]}, "entity #0"),
        ],
    )
    def test_malformed(self, data: object, message: str) -> None:
        with pytest.raises(InvalidExportDocumentError, match=message):
            ExportDocument.from_dict(data)  # type: ignore[arg-type]


class TestRootInference:
    """Tests for version-1 root inference."""

    @pytest.mark.unit
    def test_first_unreferenced_item_type(self) -> None:
        entities = blog_entities()
        # Put a referenced item type first: it must not be picked
        entities.insert(0, entities.pop(2))

        assert entities[0].id == "it-author"
        assert infer_root_item_type_id(entities) == "it-post"

    @pytest.mark.unit
    def test_all_referenced_falls_back_to_first(self) -> None:
        assert infer_root_item_type_id(cyclic_entities()) == "it-a"

    @pytest.mark.unit
    def test_self_reference_does_not_count(self) -> None:
        entities = [
            make_item_type("it-1", "category"),
            make_link_field("f-parent", "it-1", "parent", ["it-1"]),
            make_item_type("it-2", "tag"),
        ]

        assert infer_root_item_type_id(entities) == "it-1"

    @pytest.mark.unit
    def test_no_item_types(self) -> None:
        with pytest.raises(InvalidExportDocumentError, match="no item types"):
            infer_root_item_type_id([])


class TestNormalize:
    """Tests for normalize_export_document()."""

    @pytest.mark.unit
    def test_upcasts_version_one(self) -> None:
        normalized = normalize_export_document(make_document(blog_entities()))

        assert normalized.version == "2"
        assert normalized.root_item_type_id == "it-post"

    @pytest.mark.unit
    def test_keeps_version_two_root(self) -> None:
        document = make_document(blog_entities(), root_item_type_id="it-author")

        assert normalize_export_document(document).root_item_type_id == "it-author"

    @pytest.mark.unit
    def test_rejects_unknown_root(self) -> None:
        document = make_document(blog_entities(), root_item_type_id="it-ghost")

        with pytest.raises(InvalidExportDocumentError, match="'it-ghost' is not in the document"):
            normalize_export_document(document)
