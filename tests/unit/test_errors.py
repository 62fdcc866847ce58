"""Unit tests for schemaport error classes.

Tests cover:
- Base SchemaportError behavior
- Error codes format (SPRT-{category}{number})
- Error to_dict serialization
- Context carried by specific error types (mapping, original exception)
"""

from __future__ import annotations

import re

import pytest

from schemaport.errors import (
    ConfigError,
    ConfigInvalidValueError,
    ConfigParseError,
    ConflictUnresolvedError,
    DocumentError,
    EntityError,
    EntityNotFoundError,
    InvalidExportDocumentError,
    InvalidResolutionError,
    OperationCancelledError,
    SchemaImportError,
    SchemaportError,
    TaskError,
    UpstreamWriteError,
)
from schemaport.schema.mapping import MappingKind, MigrationMapping


class TestSchemaportError:
    """Tests for base SchemaportError class."""

    @pytest.mark.unit
    def test_error_str_includes_code_and_message(self) -> None:
        error = SchemaportError("Test message")

        assert error.code in str(error)
        assert "Test message" in str(error)

    @pytest.mark.unit
    def test_error_to_dict(self) -> None:
        """to_dict() returns code, message and context."""
        error = SchemaportError("Test message", extra="value")
        data = error.to_dict()

        assert data["code"] == error.code
        assert data["message"] == "Test message"
        assert data["context"]["extra"] == "value"

    @pytest.mark.unit
    def test_context_becomes_attributes(self) -> None:
        error = SchemaportError("msg", entity_id="42")

        assert error.entity_id == "42"  # type: ignore[attr-defined]

    @pytest.mark.unit
    def test_reserved_context_keys_do_not_overwrite(self) -> None:
        """A context key named 'code' must not replace the class code."""
        error = SchemaportError("msg", code="HIJACK")

        assert error.code == "SPRT-000"
        assert error.context["code"] == "HIJACK"


class TestErrorCodes:
    """Every error class carries a well-formed, unique code."""

    ALL_ERRORS = [
        EntityError,
        EntityNotFoundError,
        DocumentError,
        InvalidExportDocumentError,
        TaskError,
        OperationCancelledError,
        SchemaImportError,
        ConflictUnresolvedError,
        InvalidResolutionError,
        UpstreamWriteError,
        ConfigError,
        ConfigParseError,
        ConfigInvalidValueError,
    ]

    @pytest.mark.unit
    @pytest.mark.parametrize("error_cls", ALL_ERRORS)
    def test_code_format(self, error_cls: type[SchemaportError]) -> None:
        assert re.fullmatch(r"SPRT-[A-Z]{3}\d{3}", error_cls.code)

    @pytest.mark.unit
    def test_codes_are_unique(self) -> None:
        codes = [cls.code for cls in self.ALL_ERRORS]
        assert len(codes) == len(set(codes))

    @pytest.mark.unit
    @pytest.mark.parametrize("error_cls", ALL_ERRORS)
    def test_all_inherit_from_base(self, error_cls: type[SchemaportError]) -> None:
        assert issubclass(error_cls, SchemaportError)


class TestSpecificErrors:
    """Tests for the context each error type records."""

    @pytest.mark.unit
    def test_entity_not_found_message(self) -> None:
        error = EntityNotFoundError("Item type", "blog_post", by="API key")

        assert "Item type with API key 'blog_post' not found" in str(error)
        assert error.to_dict()["context"] == {
            "kind": "Item type",
            "key": "blog_post",
            "by": "API key",
        }

    @pytest.mark.unit
    def test_invalid_document_includes_path(self) -> None:
        error = InvalidExportDocumentError("bad", path="/tmp/export.json")

        assert "/tmp/export.json" in str(error)
        assert error.reason == "bad"  # type: ignore[attr-defined]

    @pytest.mark.unit
    def test_conflict_unresolved_lists_entities(self) -> None:
        error = ConflictUnresolvedError(["item_type 'post'", "plugin 'stars'"])

        assert "2 colliding entities" in str(error)
        assert "item_type 'post'" in str(error)

    @pytest.mark.unit
    def test_conflict_unresolved_singular(self) -> None:
        error = ConflictUnresolvedError(["item_type 'post'"])

        assert "1 colliding entity " in str(error)

    @pytest.mark.unit
    def test_upstream_write_keeps_original_and_mapping(self) -> None:
        mapping = MigrationMapping()
        mapping.bind(MappingKind.ITEM_TYPE, "it-1", "new-1")
        original = RuntimeError("422 Unprocessable")

        error = UpstreamWriteError("Create field", "f-1", original, mapping)

        assert error.original_exception is original
        assert error.mapping is mapping
        assert error.to_dict()["context"]["original_error_type"] == "RuntimeError"
        assert "mapping" not in error.to_dict()["context"]

    @pytest.mark.unit
    def test_operation_cancelled_mapping_defaults_to_none(self) -> None:
        error = OperationCancelledError("Import")

        assert error.mapping is None
        assert str(error).endswith("Import cancelled")

    @pytest.mark.unit
    def test_config_invalid_value_message(self) -> None:
        error = ConfigInvalidValueError("concurrency", 0, "a positive integer")

        assert "'concurrency'" in str(error)
        assert "a positive integer" in str(error)
