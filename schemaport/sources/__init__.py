"""Schema sources: the read-only lookup contract and its two implementations."""

from __future__ import annotations

from schemaport.sources.cache import EntityCache
from schemaport.sources.export import ExportSchemaSource
from schemaport.sources.project import ProjectSchemaSource
from schemaport.sources.protocol import SchemaSource

__all__ = [
    "EntityCache",
    "ExportSchemaSource",
    "ProjectSchemaSource",
    "SchemaSource",
]
