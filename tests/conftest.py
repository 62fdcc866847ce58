"""Shared pytest fixtures for schemaport tests."""

from __future__ import annotations

import pytest

from schemaport.backends.memory import InMemorySchemaBackend
from schemaport.models.document import ExportDocument
from schemaport.sources.export import ExportSchemaSource
from tests.factories import blog_entities, make_document

# =============================================================================
# Blog Project
# =============================================================================


@pytest.fixture
def blog_document() -> ExportDocument:
    """Version-2 export of the blog project, rooted at the post."""
    return make_document(blog_entities(), root_item_type_id="it-post")


@pytest.fixture
def blog_source(blog_document: ExportDocument) -> ExportSchemaSource:
    return ExportSchemaSource(blog_document)


@pytest.fixture
def blog_backend() -> InMemorySchemaBackend:
    """In-memory project seeded with the blog schema."""
    return InMemorySchemaBackend(blog_entities())


@pytest.fixture
def empty_backend() -> InMemorySchemaBackend:
    return InMemorySchemaBackend()
