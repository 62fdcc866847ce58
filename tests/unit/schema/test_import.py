"""Unit tests for reading export documents."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from schemaport.errors import InvalidExportDocumentError
from schemaport.models.document import ExportDocument
from schemaport.schema.export import write_export_document
from schemaport.schema.import_ import read_export_document
from tests.factories import blog_entities, make_document


class TestReadExportDocument:
    """Tests for read_export_document()."""

    @pytest.mark.unit
    def test_reads_written_document(self, tmp_path: Path, blog_document: ExportDocument) -> None:
        path = write_export_document(blog_document, tmp_path / "export.json")

        document = read_export_document(path)

        assert document.root_item_type_id == "it-post"
        assert [e.id for e in document.entities] == [e.id for e in blog_document.entities]

    @pytest.mark.unit
    def test_version_one_is_upcast(self, tmp_path: Path) -> None:
        path = write_export_document(make_document(blog_entities()), tmp_path / "v1.json")

        document = read_export_document(path)

        assert document.version == "2"
        assert document.root_item_type_id == "it-post"

    @pytest.mark.unit
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_export_document(tmp_path / "missing.json")

    @pytest.mark.unit
    def test_invalid_json_names_the_file(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(InvalidExportDocumentError) as exc_info:
            read_export_document(path)

        assert exc_info.value.path == str(path)
        assert "not valid JSON" in str(exc_info.value)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ([], "top-level value must be an object"),
            ({"version": "2"}, "'entities' must be a list"),
            ({"version": "3", "entities": []}, "unsupported version"),
            ({"version": "1", "entities": [{"type": "widget", "id": "1"}]}, "Unknown entity type"),
            ({"version": "1", "entities": []}, "no item types"),
        ],
    )
    def test_malformed_documents(self, tmp_path: Path, data: object, message: str) -> None:
        path = tmp_path / "export.json"
        path.write_text(json.dumps(data), encoding="utf-8")

        with pytest.raises(InvalidExportDocumentError, match=message) as exc_info:
            read_export_document(path)

        assert exc_info.value.path == str(path)

    @pytest.mark.unit
    def test_root_must_exist(self, tmp_path: Path) -> None:
        path = tmp_path / "export.json"
        data = make_document(blog_entities(), root_item_type_id="it-post").to_dict()
        data["rootItemTypeId"] = "it-ghost"
        path.write_text(json.dumps(data), encoding="utf-8")

        with pytest.raises(InvalidExportDocumentError, match="'it-ghost' is not in the document"):
            read_export_document(path)
